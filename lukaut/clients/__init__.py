"""Client management."""

from lukaut.clients.service import (
    ClientParams,
    create_client,
    delete_client,
    get_client,
    list_all_clients,
    list_clients,
    update_client,
)

__all__ = [
    "ClientParams",
    "create_client",
    "delete_client",
    "get_client",
    "list_all_clients",
    "list_clients",
    "update_client",
]
