"""
Custom exception hierarchy for the vicsoil system.
Provides clear error categories and rich error information.
"""
from typing import Optional, Any, Dict
from dataclasses import dataclass


@dataclass
class ErrorContext:
    """Context information for errors"""
    cell_id: Optional[str] = None
    record: Optional[int] = None
    layer: Optional[int] = None
    component: Optional[str] = None
    operation: Optional[str] = None
    details: Optional[Dict[str, Any]] = None


class VicsoilError(Exception):
    """Base exception for all vicsoil errors"""

    def __init__(self, message: str, context: Optional[ErrorContext] = None):
        super().__init__(message)
        self.message = message
        self.context = context or ErrorContext()

    def __str__(self) -> str:
        context_str = ""
        if self.context.cell_id is not None:
            context_str += f" [Cell: {self.context.cell_id}]"
        if self.context.record is not None:
            context_str += f" [Record: {self.context.record}]"
        if self.context.layer is not None:
            context_str += f" [Layer: {self.context.layer}]"
        if self.context.component:
            context_str += f" [Component: {self.context.component}]"

        return f"{self.__class__.__name__}: {self.message}{context_str}"


# Physics model errors
class PhysicsModelError(VicsoilError):
    """Base class for physics model errors"""
    pass


class FatalInvariantViolation(PhysicsModelError):
    """
    Model state is corrupt (e.g. negative sublayer moisture on entry).

    Never retried: the run must stop.
    """
    pass


class WaterBalanceError(PhysicsModelError):
    """Water balance violation"""
    pass


class ParameterError(PhysicsModelError):
    """Invalid model parameters"""
    pass


# Configuration errors
class ConfigurationError(VicsoilError):
    """Configuration error"""
    pass


def handle_exception(exc: Exception, context: Optional[ErrorContext] = None) -> VicsoilError:
    """
    Wrap generic exceptions in VicsoilError hierarchy.
    Useful for catching and categorizing third-party exceptions.
    """
    if isinstance(exc, VicsoilError):
        return exc

    error_map = {
        FileNotFoundError: ConfigurationError,
        ValueError: ParameterError,
        ZeroDivisionError: PhysicsModelError,
        FloatingPointError: PhysicsModelError,
    }

    for exc_type, vicsoil_exc_type in error_map.items():
        if isinstance(exc, exc_type):
            return vicsoil_exc_type(str(exc), context)

    return VicsoilError(str(exc), context)
