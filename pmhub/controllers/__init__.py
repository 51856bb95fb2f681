from .health_controller import router as health_router
from .project_controller import router as project_router
from .task_controller import router as task_router
from .realtime_controller import router as realtime_router

# (router, prefix, tag)
all_routers = [
    (health_router, "/health", "Health"),
    (project_router, "/projects", "Projects"),
    (task_router, "", "Tasks"),          # /projects/{id}/tasks, /tasks/{id}
    (realtime_router, "", "Realtime"),   # /ws
]
