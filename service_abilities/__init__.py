"""
Ability Layer: rule-based permission checks for actors, actions and subjects.
"""
