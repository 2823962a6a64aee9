from typing import Literal

from langchain_ollama import ChatOllama, OllamaEmbeddings
from langchain_openai import ChatOpenAI, OpenAIEmbeddings
from langchain_core.output_parsers import StrOutputParser
from langchain_core.embeddings import Embeddings
from langchain_core.language_models.chat_models import BaseChatModel as T_LLM

from support_bot import config

from logger import get_logger
log = get_logger(name="core_llm")

T_PROVIDER = Literal["openai", "ollama"]


def get_llm(model_name: str, temperature: float,
            provider: T_PROVIDER = config.LLM_PROVIDER,
            context_size: int = config.MAX_CONTENT_SIZE,
            verify_connection: bool = False) -> T_LLM:
    """Get the chat model with the specified parameters.

    Args:
        model_name (str): The name of the LLM model to use.
        temperature (float): The temperature setting for the model.
        provider (str): Either "openai" or "ollama".
        context_size (int): The maximum context size (Ollama only).
        verify_connection (bool): Whether to verify the connection to the model.

    Returns:
        BaseChatModel: An instance of the LLM model configured with the specified parameters.
    """

    log.info(f"Initializing LLM(provider={provider}, model={model_name}, temp={temperature})")

    if provider == "openai":
        model = ChatOpenAI(model=model_name, temperature=temperature)
    elif provider == "ollama":
        model = ChatOllama(
            model=model_name, num_ctx=context_size,
            temperature=temperature, base_url=config.OLLAMA_BASE_URL
        )
    else:
        raise ValueError(f"Unsupported LLM provider '{provider}'. Choose from ['openai', 'ollama'].")

    if verify_connection:
        try:
            _ = model.invoke("ping")
            log.info(f"LLM model '{model_name}' initialized and connection verified.")

        except Exception as e:
            log.error(f"Failed to initialize LLM model '{model_name}': {e}")
            raise RuntimeError(f"Could not initialize LLM model '{model_name}'") from e
    else:
        log.warning(f"LLM model '{model_name}' initialized without connection verification.")

    return model


def get_embeddings(model_name: str,
                   provider: T_PROVIDER = config.LLM_PROVIDER,
                   verify_connection: bool = False) -> Embeddings:
    """Get the embeddings model used for indexing and querying issues.

    Args:
        model_name (str): The name of the embeddings model.
        provider (str): Either "openai" or "ollama".
        verify_connection (bool): Whether to embed a test string right away.

    Returns:
        Embeddings: The embeddings model instance.
    """

    log.info(f"Initializing Embeddings(provider={provider}, model={model_name})")

    if provider == "openai":
        embeddings = OpenAIEmbeddings(model=model_name)
    elif provider == "ollama":
        embeddings = OllamaEmbeddings(model=model_name, base_url=config.OLLAMA_BASE_URL)
    else:
        raise ValueError(f"Unsupported embeddings provider '{provider}'. Choose from ['openai', 'ollama'].")

    if verify_connection:
        try:
            embeddings.embed_documents(['a'])
            log.info(f"Embeddings model '{model_name}' initialized and verified.")

        except Exception as e:
            log.error(f"Failed to initialize Embeddings: {e}")
            raise RuntimeError(f"Couldn't initialize Embeddings model '{model_name}'") from e
    else:
        log.warning(f"Embeddings '{model_name}' initialized without connection verification.")

    return embeddings


def get_output_parser():
    """Get the output parser for the LLM model.

    Returns:
        StrOutputParser: An instance of StrOutputParser to parse the model's output.
    """
    log.info("Initializing the output parser for LLM responses.")
    return StrOutputParser()
