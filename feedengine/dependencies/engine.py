from fastapi import Request

from feedengine.context import EngineContext


def get_engine(request: Request) -> EngineContext:
    """The EngineContext created by the application lifespan"""
    return request.app.state.engine
