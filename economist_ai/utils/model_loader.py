import os

from dotenv import load_dotenv
from langchain_google_genai import ChatGoogleGenerativeAI, GoogleGenerativeAIEmbeddings
from langchain_groq import ChatGroq

from economist_ai.exception import ConfigError
from economist_ai.logger import GLOBAL_LOGGER as log
from economist_ai.utils.config_loader import load_config


class ApiKeyManager:
    REQUIRED = ["GOOGLE_API_KEY"]
    OPTIONAL = ["GROQ_API_KEY"]

    def __init__(self):
        load_dotenv()
        self.keys = {}

        for k in self.REQUIRED + self.OPTIONAL:
            if val := os.getenv(k):
                self.keys[k] = val
                log.info("Loaded %s from env", k)
            elif k in self.REQUIRED:
                log.error("Missing required API key: %s", k)

        missing = [k for k in self.REQUIRED if k not in self.keys]
        if missing:
            raise ConfigError("Missing API keys", details=", ".join(missing))

    def get(self, key: str) -> str:
        if key not in self.keys:
            raise ConfigError("Missing API key", details=key)
        return self.keys[key]


class ModelLoader:
    """
    Responsible for:
    - Loading the embedding model
    - Loading role-based chat models ("chat", "summary") from config
    """

    def __init__(self, config: dict | None = None):
        # validates env keys as soon as the loader is created
        self.api_key_mgr = ApiKeyManager()
        self.config = config or load_config()
        log.info("YAML config loaded | keys=%s", list(self.config.keys()))

    def load_embeddings(self):
        """
        Load and return embedding model from Google Generative AI.
        """
        try:
            model_name = self.config["embedding_model"]["model_name"]
            log.info("Loading embedding model | model=%s", model_name)
            return GoogleGenerativeAIEmbeddings(
                model=model_name, google_api_key=self.api_key_mgr.get("GOOGLE_API_KEY")
            )
        except ConfigError:
            raise
        except Exception as e:
            log.error("Error loading embedding model | error=%s", str(e))
            raise ConfigError("Failed to load embedding model", details=str(e)) from e

    def load_llm(
        self,
        role: str,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ):
        """
        Load the configured LLM for a role.
        Args:
            role: One of the keys under `llm` in config ("chat", "summary")
            temperature: per-request override of the configured temperature
            max_tokens: per-request override of the output token limit

        Returns:
            LangChain chat model instance
        """
        if role not in self.config["llm"]:
            log.error("LLM role not found in config | role=%s", role)
            raise ConfigError(f"LLM role '{role}' not found in config")

        llm_config = self.config["llm"][role]

        provider = llm_config["provider"]
        model = llm_config["model_name"]
        temp = temperature if temperature is not None else llm_config.get("temperature")
        max_t = max_tokens if max_tokens is not None else llm_config.get("max_tokens")
        timeout = llm_config.get("timeout")

        log.info("Loading LLM | role=%s | model=%s | temperature=%s", role, model, temp)

        if provider == "google":
            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=self.api_key_mgr.get("GOOGLE_API_KEY"),
                temperature=temp,
                max_output_tokens=max_t,
                timeout=timeout,
            )

        if provider == "groq":
            return ChatGroq(
                model=model,
                api_key=self.api_key_mgr.get("GROQ_API_KEY"),
                temperature=temp,
                max_tokens=max_t,
                timeout=timeout,
            )

        raise ConfigError(f"Unsupported provider {provider}")
