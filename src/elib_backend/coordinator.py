"""
Book asset lifecycle coordination.

Creating, updating or deleting a book touches three resources: the staged
temporary files of the request, the cover and document blobs in the object
store, and the book record in the metadata database. The BookAssetCoordinator
sequences those calls, applies the ownership check, and guarantees the staged
files are deleted on every exit path.

Steps run strictly one after another. A failure stops the sequence and is
raised unchanged; uploads that already succeeded in the same call are not
rolled back, they are only logged as orphaned.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from .asset_ids import public_id_for
from .asset_store import AssetStore
from .authorization import ensure_owner
from .database import BookDatabase
from .errors import NotFoundError
from .models import AssetKind, AssetReference, Book, BookChanges, BookDeleted
from .staging import StagedBookFiles, TempFileHandle, discard
from .utils import mime_subtype

logger = logging.getLogger(__name__)

DOCUMENT_FORMAT = "pdf"


class BookAssetCoordinator:
    """
    Create, update and delete books together with their stored assets.

    The coordinator is stateless apart from its collaborators, so one
    instance serves all concurrent requests.

    Args:
        store: Object-store adapter for covers and documents
        database: Book metadata repository
        document_format: Format forced on uploaded documents
    """

    def __init__(
        self,
        store: AssetStore,
        database: BookDatabase,
        document_format: str = DOCUMENT_FORMAT,
    ):
        self.store = store
        self.database = database
        self.document_format = document_format

    def create_book(
        self,
        *,
        title: str,
        genre: str,
        owner_id: str,
        staged: StagedBookFiles,
        description: Optional[str] = None,
    ) -> str:
        """
        Upload both assets and persist a new book.

        Returns:
            The new book's id

        Raises:
            ValidationError: If either staged file is missing (no uploads happen)
            UpstreamStoreError: If an upload fails
            PersistenceError: If the record cannot be written
        """
        uploaded: List[AssetReference] = []
        try:
            cover, document = staged.require()

            cover_ref = self._upload(cover, AssetKind.IMAGE)
            uploaded.append(cover_ref)
            document_ref = self._upload(document, AssetKind.DOCUMENT)
            uploaded.append(document_ref)

            now = datetime.now(timezone.utc)
            book = self.database.create(
                Book(
                    id=uuid4().hex,
                    title=title,
                    genre=genre,
                    description=description,
                    cover_image=cover_ref,
                    document=document_ref,
                    owner_id=owner_id,
                    created_at=now,
                    updated_at=now,
                )
            )
            logger.info(f"Created book {book.id} for owner {owner_id}")
            return book.id
        except Exception:
            for reference in uploaded:
                logger.warning(f"Create failed; stored asset {reference.url} has no book")
            raise
        finally:
            staged.discard()

    def update_book(
        self,
        book_id: str,
        requester_id: str,
        changes: BookChanges,
        staged: StagedBookFiles,
    ) -> Book:
        """
        Replace supplied assets and metadata of a book owned by the requester.

        For each staged file the old blob is destroyed before the new one is
        uploaded. Assets without a staged file keep their reference.

        Raises:
            NotFoundError: If the book does not exist
            ForbiddenError: If the requester is not the owner
            UpstreamStoreError: If a destroy or upload fails
            PersistenceError: If the record cannot be read or written
        """
        try:
            book = self._require_book(book_id)
            ensure_owner(book, requester_id, "update")

            cover_ref = book.cover_image
            if staged.cover is not None:
                cover_ref = self._replace(book.cover_image, staged.cover)

            document_ref = book.document
            if staged.document is not None:
                document_ref = self._replace(book.document, staged.document)

            columns = {
                "title": changes.title if changes.title is not None else book.title,
                "genre": changes.genre if changes.genre is not None else book.genre,
                "description": (
                    changes.description if changes.description is not None else book.description
                ),
                "cover_url": cover_ref.url,
                "file_url": document_ref.url,
            }
            updated = self.database.update_by_id(book_id, columns)
            if updated is None:
                raise NotFoundError("Book not found.")
            logger.info(f"Updated book {book_id}")
            return updated
        finally:
            staged.discard()

    def delete_book(self, book_id: str, requester_id: str) -> BookDeleted:
        """
        Destroy both assets, then the record.

        Both identifiers are derived before any destroy call, and a failed
        destroy leaves the record in place.
        """
        book = self._require_book(book_id)
        ensure_owner(book, requester_id, "delete")

        references = [book.cover_image, book.document]
        public_ids = [public_id_for(reference) for reference in references]
        for reference, public_id in zip(references, public_ids):
            self.store.destroy(public_id, reference.kind)

        if not self.database.delete_by_id(book_id):
            raise NotFoundError("Book not found.")
        logger.info(f"Deleted book {book_id}")
        return BookDeleted(id=book_id, message="deleted")

    def get_book(self, book_id: str) -> Book:
        return self._require_book(book_id)

    def list_books(self) -> List[Book]:
        return self.database.list_books()

    def _require_book(self, book_id: str) -> Book:
        book = self.database.find_by_id(book_id)
        if book is None:
            raise NotFoundError("Book not found.")
        return book

    def _format_for(self, handle: TempFileHandle, kind: AssetKind) -> str:
        if kind is AssetKind.IMAGE:
            return mime_subtype(handle.mime_type)
        return self.document_format

    def _upload(self, handle: TempFileHandle, kind: AssetKind) -> AssetReference:
        return self.store.upload(
            handle.path,
            kind,
            override_name=handle.filename,
            fmt=self._format_for(handle, kind),
            content_type=handle.mime_type,
        )

    def _replace(self, current: AssetReference, handle: TempFileHandle) -> AssetReference:
        # destroy first: a failed destroy must not leave a freshly uploaded orphan
        self.store.destroy(public_id_for(current), current.kind)
        replacement = self._upload(handle, current.kind)
        discard(handle)
        return replacement
