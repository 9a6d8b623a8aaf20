# Author: Bradley R. Kinnard — gatekeepers

"""FastAPI dependencies. The service is built once in lifespan and hung off app.state."""

from fastapi import HTTPException, Request, status

from src.suggester.services.suggestion_service import SuggestionService


def get_service(request: Request) -> SuggestionService:
    service = getattr(request.app.state, "service", None)
    if service is None:
        # lifespan didn't run, usually a test client used without a context manager
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="service not ready")
    return service
