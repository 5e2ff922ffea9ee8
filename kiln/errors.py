

class KilnError(Exception):
    """ Base class for all kiln errors"""
    pass

class KilnSyntaxError(KilnError):
    """ Raised when source text cannot be read"""

class UndefinedVariableError(KilnError):
    """ Raised when a name is used before it is bound"""

class DuplicateDefinitionError(KilnError):
    """ Raised when a top-level name is bound twice"""

class ArityError(KilnError):
    """ Raised when the number of arguments passed to a function is incorrect"""

class KilnTypeError(KilnError):
    """ Raised when an operation is applied to an incompatible value"""

class KilnIndexError(KilnTypeError):
    """ Raised when a list index is out of range"""

class MissingEnvVarError(KilnError):
    """ Raised by getenv when a variable is unset and no default was given"""

    def __init__(self, name: str):
        super().__init__(f"Environment variable {name!r} is not set")
        self.name = name

class StaleInputError(KilnError):
    """ Raised when a declared input file no longer exists"""

    def __init__(self, path: str):
        super().__init__(f"Declared input {path!r} does not exist")
        self.path = path

class FileAccessError(KilnError):
    """ Raised when a file builtin cannot read or write its path"""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Cannot access {path!r}: {reason}")
        self.path = path

class BuildFailedError(KilnError):
    """ Raised when one or more call nodes failed during a build run.

    `failures` holds (node, exception) pairs in the order they were observed;
    `first` is the error of the first failed node.
    """

    def __init__(self, failures: list, report=None):
        self.failures = list(failures)
        self.report = report
        self.first = self.failures[0][1] if self.failures else None
        lines = [f"{len(self.failures)} node(s) failed:"]
        for node, error in self.failures:
            lines.append(f"  [{node.index}] {node.label}: {type(error).__name__}: {error}")
        super().__init__("\n".join(lines))
