from .langchain_gateway import LangChainModelGateway

__all__ = ["LangChainModelGateway"]
