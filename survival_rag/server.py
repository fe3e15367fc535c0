# ./survival_rag/server.py
from typing import Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from survival_rag.agents.rag_retriever import get_engine, retrieve_context
from survival_rag.config import settings
from survival_rag.rag import CorruptIndexError, KnowledgeBaseNotFoundError

app = FastAPI()


class QueryRequest(BaseModel):
    query: str
    kb_id: str
    k: int = settings.RAG_TOP_K
    min_score: Optional[float] = settings.RAG_MIN_SCORE
    max_chars: int = settings.RAG_CONTEXT_MAX_CHARS


@app.get("/")
def health():
    return {"ok": True}


@app.get("/knowledge-bases")
def knowledge_bases():
    return [
        {"id": kb.id, "name": kb.name, "description": kb.description, "doc_count": kb.doc_count}
        for kb in get_engine().store.list_knowledge_bases()
    ]


@app.post("/query")
def query(request: QueryRequest):
    try:
        return retrieve_context(
            request.query,
            request.kb_id,
            k=request.k,
            min_score=request.min_score,
            max_chars=request.max_chars,
            engine=get_engine()
        )
    except KnowledgeBaseNotFoundError as e:
        raise HTTPException(status_code=404, detail=e.message)
    except CorruptIndexError as e:
        raise HTTPException(status_code=503, detail=e.message)
