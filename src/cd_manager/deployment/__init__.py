"""
Task-control backends.
"""

from .base import Deployment
from .ecs import EcsDeployment, EcsSettings

__all__ = [
    "Deployment",
    "EcsDeployment",
    "EcsSettings",
]
