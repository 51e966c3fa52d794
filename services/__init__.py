"""
Application services layer.

Services orchestrate business operations using repositories and domain services.
The domain layer imports domain.error_codes, so this package only exposes
the Result type; import concrete services from their modules.
"""

# Result type for consistent error handling
from services.result import Result

__all__ = [
    "Result",
]
