from shared.clients.ClientManager import ClientManager
from shared.clients.db.DBClientInterface import DBClientInterface


class DBClientManager(ClientManager):
    """
    Resolves DB_ENGINE (e.g. "supabase") to its relational store client.
    """

    client_type = "db"
    class_prefix = "DBClient"

    def get_client(self) -> DBClientInterface:
        return self.client
