from drilldown.parser.loader import DEFAULT_SOURCE, SESSION_SOURCE, DimensionRegistry

__all__ = ["DEFAULT_SOURCE", "SESSION_SOURCE", "DimensionRegistry"]
