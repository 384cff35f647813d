from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class ClientManager:
    """
    Instantiates the client of one client type (e.g. "rag") for the engine named in ENV.

    The engine named by <TYPE>_ENGINE (e.g. RAG_ENGINE=pinecone) is resolved to the class
    shared.clients.<type>.<engine>.<Prefix><Engine>, e.g. shared.clients.rag.pinecone.RAGClientPinecone.
    """

    client_type: str = ""
    class_prefix: str = ""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """
        Reads the engine name from ENV configuration.

        Returns:
            str: The capitalised engine name (e.g. "Pinecone").

        Raises:
            ValueError: If no engine is specified in the configuration.
        """
        engine = self.helper_config.get_string_val(f"{self.client_type.upper()}_ENGINE")
        if not engine:
            raise ValueError(f"No {self.client_type.upper()} engine specified in configuration.")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> ClientInterface:
        """
        Initializes the client for the engine specified in the configuration.

        Returns:
            ClientInterface: The client instance.

        Raises:
            ValueError: If the engine is unknown or the client class cannot be instantiated.
        """
        engine = self._get_engine_from_env()
        class_name = f"{self.class_prefix}{engine}"
        try:
            module = __import__(
                f"shared.clients.{self.client_type}.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
        except (ImportError, AttributeError) as e:
            raise ValueError(f"Unsupported {self.client_type.upper()} engine specified: '{engine}'. Error: {e}")
        client = client_class(helper_config=self.helper_config)
        self.logging.debug("Instantiated %s client for engine: %s", self.client_type.upper(), engine)
        return client

    def get_client(self) -> ClientInterface:
        """
        Returns the instantiated client.
        """
        return self.client
