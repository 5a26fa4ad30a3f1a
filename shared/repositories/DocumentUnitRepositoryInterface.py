from abc import ABC, abstractmethod

from shared.models.document import DocumentKind, DocumentUnit, VectorStatus


class DocumentUnitRepositoryInterface(ABC):
    """Contract the persistence layer implements so the core can read notes and
    library items and write back vectorization state.

    Lookups return None for unknown ids. They never raise for "not found".
    """

    PLACEHOLDER_NOTE_NAME = "__LIBRARY_ITEMS_SYSTEM__"

    ##########################################
    ################ GETTER ##################
    ##########################################

    @abstractmethod
    async def get_unit(self, kind: DocumentKind, unit_id: str) -> DocumentUnit | None:
        """
        Returns the note or library item with the given id.

        Args:
            kind (DocumentKind): Which table to look in.
            unit_id (str): The id of the unit.

        Returns:
            DocumentUnit | None: The unit, or None if it does not exist.
        """
        pass

    async def get_note(self, note_id: str) -> DocumentUnit | None:
        return await self.get_unit(DocumentKind.NOTE, note_id)

    async def get_library_item(self, library_item_id: str) -> DocumentUnit | None:
        return await self.get_unit(DocumentKind.LIBRARY_ITEM, library_item_id)

    @abstractmethod
    async def list_attached_library_items(self, note_id: str) -> list[DocumentUnit]:
        """
        Returns the library items currently attached to the note.

        Args:
            note_id (str): The id of the note.

        Returns:
            list[DocumentUnit]: Attached library items, empty if none or unknown note.
        """
        pass

    @abstractmethod
    async def get_or_create_placeholder_note(self, project_id: str, owner_user_id: str) -> DocumentUnit:
        """
        Returns the per-project placeholder note, creating it on first use.

        The placeholder owns the chunks of library items that are not attached
        to any real note. There is at most one per project.

        Args:
            project_id (str): The project.
            owner_user_id (str): Owner to use if the note has to be created.

        Returns:
            DocumentUnit: The placeholder note (is_placeholder=True).
        """
        pass

    ##########################################
    ################ SETTER ##################
    ##########################################

    @abstractmethod
    async def set_vector_status(
        self,
        kind: DocumentKind,
        unit_id: str,
        status: VectorStatus,
        error: str | None = None,
    ) -> None:
        """
        Writes vector_status, vector_updated_at (now) and vector_error for the unit.

        Args:
            kind (DocumentKind): Which table to write to.
            unit_id (str): The id of the unit.
            status (VectorStatus): The new status.
            error (str | None): Error text for failed runs, cleared otherwise.
        """
        pass

    @abstractmethod
    async def set_associated_note(self, library_item_id: str, note_id: str | None) -> None:
        """Sets (or clears) the note a library item is associated with."""
        pass

    @abstractmethod
    async def set_summary(self, library_item_id: str, summary: str) -> None:
        """Stores the generated summary of a library item."""
        pass
