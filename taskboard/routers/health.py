from fastapi import APIRouter, Request

router = APIRouter()

@router.get("/z")
def healthz(request: Request):
    # Check si l'API est up + état du push live
    return {
        "status": "ok",
        "live": request.app.state.notifier.available,
        "sessions": request.app.state.broadcaster.session_count,
    }
