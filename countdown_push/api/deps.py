from fastapi import Request

from countdown_push.core.supervisor import SchedulerSupervisor


def get_supervisor(request: Request) -> SchedulerSupervisor:
    """FastAPI dependency returning the supervisor built during startup."""
    return request.app.state.supervisor
