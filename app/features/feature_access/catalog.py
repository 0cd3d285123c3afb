"""
Static catalog of dashboard capabilities.

Order matters: the rendered tree follows CATALOG order. Appending a
capability here is all that is needed to roll it out; existing grant
records pick it up through the backfill in service.py (and a matching
nullable column in models.py).
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List


@dataclass(frozen=True)
class Capability:
    key: str
    title: str
    path: str
    is_parent_of_nested: bool = False


@dataclass(frozen=True)
class NestedCapability:
    """Settings page entry; shares the settings flag, never stored."""
    title: str
    path: str


SETTINGS_KEY = "einstellungen"

CATALOG: tuple[Capability, ...] = (
    Capability("dashboard", "Dashboard", "/dashboard"),
    Capability("teamchat", "Teamchat", "/dashboard/teamchat"),
    Capability("kundensuche", "Kundensuche", "/dashboard/customers"),
    Capability("neukundenerstellung", "Neukundenerstellung", "/dashboard/neukundenerstellung"),
    Capability("einlagenauftrage", "Einlagenaufträge", "/dashboard/orders"),
    Capability("massschuhauftrage", "Maßschuhaufträge", "/dashboard/massschuhauftraege"),
    Capability("massschafte", "Maßschäfte", "/dashboard/custom-shafts"),
    Capability("produktverwaltung", "Produktverwaltung", "/dashboard/lager"),
    Capability("sammelbestellungen", "Sammelbestellungen", "/dashboard/group-orders"),
    Capability("nachrichten", "Nachrichten", "/dashboard/email/inbox"),
    Capability("terminkalender", "Terminkalender", "/dashboard/calendar"),
    Capability("monatsstatistik", "Monatsstatistik", "/dashboard/monatsstatistik"),
    Capability("mitarbeitercontrolling", "Mitarbeitercontrolling", "/dashboard/mitarbeitercontrolling"),
    Capability("einlagencontrolling", "Einlagencontrolling", "/dashboard/einlagencontrolling"),
    Capability("fusubungen", "Fußübungen", "/dashboard/foot-exercises"),
    Capability("musterzettel", "Musterzettel", "/dashboard/musterzettel"),
    Capability(SETTINGS_KEY, "Einstellungen", "/dashboard/settings", is_parent_of_nested=True),
    Capability("news_and_aktuelles", "News & Aktuelles", "/dashboard/news"),
    Capability("produktkatalog", "Produktkatalog", "/dashboard/products"),
    Capability("balance", "Balance", "/dashboard/balance-dashboard"),
    Capability("automatisierte_nachrichten", "Automatisierte Nachrichten", "/dashboard/automatisierte-nachrichten"),
    Capability("kasse_and_abholungen", "Kasse & Abholungen", "/dashboard/kasse"),
    Capability("finanzen_and_kasse", "Finanzen & Kasse", "/dashboard/finanzen-kasse"),
    Capability("einnahmen_and_rechnungen", "Einnahmen & Rechnungen", "/dashboard/einnahmen"),
)

SETTINGS_CHILDREN: tuple[NestedCapability, ...] = (
    NestedCapability("Grundeinstellungen", "/dashboard/settings-profile"),
    NestedCapability("Backup Einstellungen", "/dashboard/settings-profile/backup"),
    NestedCapability("Kundenkommunikation", "/dashboard/settings-profile/communication"),
    NestedCapability("Werkstattzettel", "/dashboard/settings-profile/werkstattzettel"),
    NestedCapability("Benachrichtigungen", "/dashboard/settings-profile/benachrichtigungen"),
    NestedCapability("Lagereinstellungen", "/dashboard/settings-profile/notifications"),
    NestedCapability("Preisverwaltung", "/dashboard/settings-profile/preisverwaltung"),
    NestedCapability("Software Scanstation", "/dashboard/settings-profile/software-scanstation"),
    NestedCapability("Design & Logo", "/dashboard/settings-profile/design"),
    NestedCapability("Passwort ändern", "/dashboard/settings-profile/changes-password"),
    NestedCapability("Sprache", "/dashboard/settings-profile/sprache"),
    NestedCapability("Fragen", "/dashboard/settings-profile/fragen"),
    NestedCapability("Automatische Orders", "/dashboard/settings-profile/automatische-orders"),
)

FEATURE_KEYS: tuple[str, ...] = tuple(capability.key for capability in CATALOG)


def default_flags() -> Dict[str, bool]:
    """System default grant: every capability enabled."""
    return {key: True for key in FEATURE_KEYS}


def unknown_keys(keys: Iterable[str]) -> List[str]:
    """Keys that are not part of the catalog, sorted for stable error messages."""
    known = set(FEATURE_KEYS)
    return sorted(key for key in keys if key not in known)
