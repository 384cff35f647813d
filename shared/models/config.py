from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter a client requires from the environment.

    Attributes:
        env_key (str): The raw key of the environment variable, without the client prefix (e.g. "API_KEY").
        val_type (str): The expected type of the value. Supported types are "string", "number", "bool" and "list".
        default (str | int | float | bool | list | None): Default if the variable is not set. None marks the variable as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
