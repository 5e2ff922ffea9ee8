from __future__ import annotations


class UnitType:
    """The value of statements that produce nothing useful."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self): return "unit"
    def __bool__(self): return False

    def __eq__(self, other):
        return isinstance(other, UnitType)

    def __hash__(self):
        return hash("unit")

    def __reduce__(self):
        # Unpickle to the module-level singleton
        return "Unit"


Unit = UnitType()
