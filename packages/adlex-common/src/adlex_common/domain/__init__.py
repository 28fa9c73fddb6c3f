"""
Domain layer for AdLex.

Value objects, the Check and Dictionary aggregates, domain errors and
the domain event union. Import from the submodules directly.
"""
