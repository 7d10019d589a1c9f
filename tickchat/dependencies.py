from fastapi.requests import HTTPConnection

from tickchat.delivery import DeliveryRouter
from tickchat.storage import FileStorage
from tickchat.websocket_manager import ConnectionManager


def get_connection_manager(conn: HTTPConnection) -> ConnectionManager:
    return conn.app.state.connection_manager


def get_delivery_router(conn: HTTPConnection) -> DeliveryRouter:
    return conn.app.state.delivery_router


def get_file_storage(conn: HTTPConnection) -> FileStorage:
    return conn.app.state.file_storage
