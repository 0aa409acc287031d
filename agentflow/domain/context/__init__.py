# This module handles context assembly

# +---------------------+
# |      Memory         |   (working, procedural, semantic, episodic)
# |---------------------|
# | Session context     |
# | Past results        |
# | Practices, prompts  |
# +---------------------+

# +---------------------+
# |      State          |   (per agent type)
# |---------------------|
# | Status              |
# | Current operation   |
# | Last result / error |
# +---------------------+

#    \    /
#     \  /
#      \/
# +------------------------------+
# |       Assembled context      |   (ranked, size-bounded)
# |------------------------------|
# | Scored items by relevance    |
# | Per-source breakdown         |
# | Summary and size metadata    |
# +------------------------------+
#         |
#         v
#   [prompt / model gateway]

from .context_assembler import ContextAssembler
from .context_optimizer import ContextOptimizer, items_payload_size
from .context_ranker import ContextRanker, DEFAULT_RELEVANCE_WEIGHTS
from .context_retriever import ContextRetriever, RegisteredSource

__all__ = [
    "ContextAssembler",
    "ContextOptimizer",
    "ContextRanker",
    "ContextRetriever",
    "RegisteredSource",
    "DEFAULT_RELEVANCE_WEIGHTS",
    "items_payload_size",
]
