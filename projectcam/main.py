# ---------------------------------------------------------
# projectcam/main.py
# ProjectCam - Construction Photo Documentation Backend
#
# Run: uvicorn projectcam.main:app --reload (from repo root)
#
# - FastAPI + SQLite (PostgreSQL when DATABASE_URL is set)
# - /auth      : register, login, current user
# - /projects  : projects, collaborators, checklists, timeline
# - /photos    : upload, metadata, comments, likes, annotations, download
# - /users     : search, profiles, stats, activity, admin management
# - /ws/projects/{project_id} : live project events (WebSocket)
# - /uploads   : stored files
# ---------------------------------------------------------

from typing import Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from projectcam import routes_auth, routes_photos, routes_projects, routes_realtime, routes_users
from projectcam.config import ENV
from projectcam.errors import register_exception_handlers
from projectcam.migrate import run_migrations
from projectcam.storage import upload_root

# ---------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------
app = FastAPI(title="ProjectCam API", version="1.0.0")

# Clients are served from arbitrary origins (web, mobile shells)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

run_migrations()

app.include_router(routes_auth.router)
app.include_router(routes_projects.router)
app.include_router(routes_photos.router)
app.include_router(routes_users.router)
app.include_router(routes_realtime.router)

app.mount("/uploads", StaticFiles(directory=str(upload_root())), name="uploads")


# ---------------------------------------------------------
# Routes
# ---------------------------------------------------------
@app.get("/health")
def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.get("/")
def root() -> Dict[str, str]:
    return {"message": "ProjectCam API is running", "env": ENV}
