import uuid
from datetime import datetime, timezone

from shared.models.document import DocumentKind, DocumentUnit, VectorStatus
from shared.repositories.DocumentUnitRepositoryInterface import DocumentUnitRepositoryInterface


class InMemoryDocumentUnitRepository(DocumentUnitRepositoryInterface):
    """Dict-backed repository for tests and local runs without a database."""

    def __init__(self):
        self._units: dict[DocumentKind, dict[str, DocumentUnit]] = {kind: {} for kind in DocumentKind}
        self._placeholders: dict[str, str] = {}  # project_id -> note id
        # every status write, in order, as (kind, unit_id, status)
        self.status_history: list[tuple[DocumentKind, str, VectorStatus]] = []

    ##########################################
    ############ TEST / SEED API #############
    ##########################################

    def add_unit(self, unit: DocumentUnit) -> DocumentUnit:
        self._units[unit.kind][unit.id] = unit
        return unit

    def add_note(self, note_id: str, owner_user_id: str, project_id: str | None, text_content: str = "", name: str = "") -> DocumentUnit:
        return self.add_unit(DocumentUnit(
            id=note_id,
            kind=DocumentKind.NOTE,
            owner_user_id=owner_user_id,
            project_id=project_id,
            name=name or note_id,
            text_content=text_content,
        ))

    def add_library_item(
        self,
        item_id: str,
        owner_user_id: str,
        project_id: str,
        text_content: str = "",
        name: str = "",
        mime_type: str | None = "application/pdf",
        note_id: str | None = None,
    ) -> DocumentUnit:
        return self.add_unit(DocumentUnit(
            id=item_id,
            kind=DocumentKind.LIBRARY_ITEM,
            owner_user_id=owner_user_id,
            project_id=project_id,
            name=name or item_id,
            mime_type=mime_type,
            text_content=text_content,
            associated_note_id=note_id,
        ))

    def remove_unit(self, kind: DocumentKind, unit_id: str) -> None:
        self._units[kind].pop(unit_id, None)

    ##########################################
    ################ GETTER ##################
    ##########################################

    async def get_unit(self, kind: DocumentKind, unit_id: str) -> DocumentUnit | None:
        unit = self._units[kind].get(unit_id)
        return unit.model_copy(deep=True) if unit else None

    async def list_attached_library_items(self, note_id: str) -> list[DocumentUnit]:
        return [
            item.model_copy(deep=True)
            for item in self._units[DocumentKind.LIBRARY_ITEM].values()
            if item.associated_note_id == note_id
        ]

    async def get_or_create_placeholder_note(self, project_id: str, owner_user_id: str) -> DocumentUnit:
        note_id = self._placeholders.get(project_id)
        if note_id is None:
            note_id = str(uuid.uuid4())
            self._units[DocumentKind.NOTE][note_id] = DocumentUnit(
                id=note_id,
                kind=DocumentKind.NOTE,
                owner_user_id=owner_user_id,
                project_id=project_id,
                name=self.PLACEHOLDER_NOTE_NAME,
                is_placeholder=True,
                vector_status=VectorStatus.COMPLETED,
            )
            self._placeholders[project_id] = note_id
        return self._units[DocumentKind.NOTE][note_id].model_copy(deep=True)

    ##########################################
    ################ SETTER ##################
    ##########################################

    async def set_vector_status(
        self,
        kind: DocumentKind,
        unit_id: str,
        status: VectorStatus,
        error: str | None = None,
    ) -> None:
        unit = self._units[kind].get(unit_id)
        if unit is None:
            return
        unit.vector_status = status
        unit.vector_updated_at = datetime.now(timezone.utc)
        unit.vector_error = error
        self.status_history.append((kind, unit_id, status))

    async def set_associated_note(self, library_item_id: str, note_id: str | None) -> None:
        item = self._units[DocumentKind.LIBRARY_ITEM].get(library_item_id)
        if item is not None:
            item.associated_note_id = note_id

    async def set_summary(self, library_item_id: str, summary: str) -> None:
        item = self._units[DocumentKind.LIBRARY_ITEM].get(library_item_id)
        if item is not None:
            item.summary = summary
