from shared.clients.ClientManager import ClientManager
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface


class EmbedClientManager(ClientManager):
    """
    Resolves EMBED_ENGINE (e.g. "openai", "ollama") to its embedding client.
    """

    client_type = "embed"
    class_prefix = "EmbedClient"

    def get_client(self) -> EmbedClientInterface:
        return self.client
