from .model_gateway import CompletionRequest, CompletionResponse, ModelGateway

__all__ = ["CompletionRequest", "CompletionResponse", "ModelGateway"]
