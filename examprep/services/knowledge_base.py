"""
Knowledge base service
Handles retrieval of textbook/syllabus passages and ingestion of new pages
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
import asyncio

from openai import AsyncOpenAI

from examprep.config import settings
from examprep.models.database import KnowledgeChunk, KnowledgeMetadata, SourceCitation
from examprep.services.document_store import DocumentSnapshot, DocumentStore
from examprep.services.embedding_service import EmbeddingService
from examprep.utils.constants import KNOWLEDGE_BASE, PAGE_ANALYSIS_PROMPT, SourceType
from examprep.utils.helpers import parse_model_json
from examprep.utils.logger import logger


@dataclass
class RetrievedContext:
    """Book and syllabus hits for one query"""
    book: List[KnowledgeChunk] = field(default_factory=list)
    syllabus: List[KnowledgeChunk] = field(default_factory=list)

    @property
    def sources(self) -> List[SourceCitation]:
        citations = [
            SourceCitation(
                type=SourceType.BOOK.value,
                book_name=chunk.metadata.book_name,
                chapter=chunk.metadata.chapter,
                page=chunk.metadata.page
            )
            for chunk in self.book
        ]
        citations.extend(
            SourceCitation(type=SourceType.SYLLABUS.value, book_name=chunk.metadata.book_name)
            for chunk in self.syllabus
        )
        return citations

    def book_context(self) -> str:
        if not self.book:
            return "No specific textbook content found."
        return "\n---\n".join(
            f"[Source {idx}] Book: {chunk.metadata.book_name} (Ch: {chunk.metadata.chapter})\nContent: {chunk.content}"
            for idx, chunk in enumerate(self.book, start=1)
        )

    def syllabus_context(self) -> str:
        if not self.syllabus:
            return "No specific syllabus content found."
        return "\n---\n".join(
            f"[Syllabus] {chunk.metadata.book_name}\nContent: {chunk.content}"
            for chunk in self.syllabus
        )


@dataclass
class PageAnalysis:
    text: str
    description: str = ""
    chapter: str = "Unknown"
    page_number: str = "Unknown"


class KnowledgeBaseService:
    """Vector search and ingestion over the knowledge_base collection"""

    def __init__(
        self,
        store: DocumentStore,
        embeddings: EmbeddingService,
        client: Optional[AsyncOpenAI] = None,
        model: Optional[str] = None
    ):
        self.store = store
        self.embeddings = embeddings
        self.client = client
        self.model = model or settings.OPENAI_MODEL

    @staticmethod
    def _chunk(snapshot: DocumentSnapshot) -> KnowledgeChunk:
        data = dict(snapshot.data)
        data.pop("embedding", None)
        return KnowledgeChunk.from_document(data)

    async def search_type(
        self,
        vector: List[float],
        source_type: SourceType,
        limit: int,
        subject: Optional[str] = None
    ) -> List[KnowledgeChunk]:
        filters: Dict[str, Any] = {"metadata.type": source_type.value}
        if subject:
            filters["metadata.subject"] = subject
        snapshots = await self.store.find_nearest(KNOWLEDGE_BASE, "embedding", vector, limit, filters)
        return [self._chunk(s) for s in snapshots]

    async def search(self, vector: List[float], subject: Optional[str] = None) -> RetrievedContext:
        """Book and syllabus searches run concurrently"""
        book, syllabus = await asyncio.gather(
            self.search_type(vector, SourceType.BOOK, settings.BOOK_MATCH_COUNT, subject),
            self.search_type(vector, SourceType.SYLLABUS, settings.SYLLABUS_MATCH_COUNT, subject)
        )
        return RetrievedContext(book=book, syllabus=syllabus)

    async def analyze_page(self, page_text: str) -> PageAnalysis:
        """
        Ask the model to extract text, visuals, chapter and page number

        Raises:
            RuntimeError: no OpenAI client
            ValueError: the model did not return parseable JSON
        """
        if not self.client:
            raise RuntimeError("OpenAI client not initialized")

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": "You are a textbook analysis assistant. Always respond with valid JSON only."},
                {"role": "user", "content": PAGE_ANALYSIS_PROMPT.format(page_text=page_text)}
            ],
            temperature=0.2,
            max_tokens=4000
        )
        content = response.choices[0].message.content or ""
        try:
            parsed = parse_model_json(content)
        except ValueError:
            logger.error(f"Page analysis returned invalid JSON. Preview: {content[:500]}")
            raise
        if not isinstance(parsed, dict) or not parsed.get("text"):
            raise ValueError("Invalid JSON response from model: missing 'text'")

        return PageAnalysis(
            text=str(parsed["text"]),
            description=str(parsed.get("description") or ""),
            chapter=str(parsed.get("chapter") or "Unknown"),
            page_number=str(parsed.get("page_number") or "Unknown")
        )

    async def ingest_page(
        self,
        page_text: str,
        source_type: SourceType = SourceType.BOOK,
        subject: Optional[str] = None,
        book_name: Optional[str] = None,
        page: Optional[str] = None
    ) -> Dict[str, Any]:
        """Analyze, embed and store one page; returns the new entry id and metadata"""
        analysis = await self.analyze_page(page_text)

        text_to_embed = "\n".join([
            f"Subject: {subject or ''}",
            f"Book: {book_name or ''}",
            f"Chapter: {analysis.chapter}",
            f"Content: {analysis.text}",
            f"Visuals: {analysis.description}",
        ])
        vector = await self.embeddings.generate_embedding(text_to_embed)

        chunk = KnowledgeChunk(
            content=analysis.text,
            visual_description=analysis.description or None,
            embedding=vector,
            metadata=KnowledgeMetadata(
                type=source_type.value,
                subject=subject,
                book_name=book_name,
                chapter=analysis.chapter,
                page=page or analysis.page_number
            )
        )
        doc_id = await self.store.add(KNOWLEDGE_BASE, chunk.to_document(exclude_none=True))
        logger.info(f"Knowledge base entry stored: {doc_id} ({source_type.value}, chapter {analysis.chapter})")

        return {
            "id": doc_id,
            "chapter": analysis.chapter,
            "page": chunk.metadata.page,
            "has_visual_description": bool(analysis.description),
        }
