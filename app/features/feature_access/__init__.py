"""
Feature access feature module.

Decides which dashboard capabilities a partner and each of its employees
may use. The partner grant is the ceiling: an employee never holds a
capability its partner lacks, and revoking a capability from a partner
revokes it from all of the partner's employees.
"""
