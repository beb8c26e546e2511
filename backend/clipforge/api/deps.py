"""
Shared API dependencies
"""
from fastapi import Request

from clipforge.services.task_registry import TaskRegistry


def get_registry(request: Request) -> TaskRegistry:
    """Registry owned by the running application"""
    return request.app.state.registry
