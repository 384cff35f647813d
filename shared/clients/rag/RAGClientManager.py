from shared.clients.ClientManager import ClientManager
from shared.clients.rag.RAGClientInterface import RAGClientInterface


class RAGClientManager(ClientManager):
    """
    Resolves RAG_ENGINE (e.g. "pinecone", "qdrant") to its vector store client.
    """

    client_type = "rag"
    class_prefix = "RAGClient"

    def get_client(self) -> RAGClientInterface:
        return self.client
