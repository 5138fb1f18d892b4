"""
Query package.

Compiles an ability's rules for one action and subject type into a filter
expression that persistence adapters execute to fetch accessible records.
"""
