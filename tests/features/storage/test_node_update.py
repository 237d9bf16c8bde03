import uuid

import pytest

from app.features.storage.domain.errors import BadRequest, FolderNotFound, InvalidMove, NodeNotFound
from app.features.storage.domain.models import FileInput


def _text(name, content):
    return FileInput(data=content, name=name, mime_type="text/plain")


def test_create_folder_under_root(service):
    folder = service.create_folder("  docs ", description="Documents")

    assert folder.name == "docs"
    assert folder.description == "Documents"
    assert folder.parent_id == service.folders.resolve_root().id


def test_create_nested_folder(service):
    docs = service.create_folder("docs")
    nested = service.create_folder("2024", parent_id=str(docs.id))

    resolved = service.resolve_folder(nested.id, with_parents=True)
    assert resolved.path == "/docs/2024"


def test_create_folder_requires_name(service):
    with pytest.raises(BadRequest):
        service.create_folder("   ")


def test_create_folder_in_missing_parent(service):
    with pytest.raises(FolderNotFound):
        service.create_folder("docs", parent_id=uuid.uuid4())


def test_rename_and_describe(service):
    folder = service.create_folder("docs")
    file = service.upload(_text("a.txt", b"a"), parent_id=folder.id)

    updated = service.update_nodes([file.id, folder.id], name="renamed", description="new")

    assert {node.name for node in updated} == {"renamed"}
    assert {node.description for node in updated} == {"new"}
    assert service.resolve_file(file.id).parent_id == folder.id


def test_move_file(service):
    source = service.create_folder("source")
    target = service.create_folder("target")
    file = service.upload(_text("a.txt", b"a"), parent_id=source.id)

    service.update_nodes([file.id], parent_id=target.id)

    listing = service.resolve_folder(target.id, with_children=True)
    assert [f.id for f in listing.files] == [file.id]


def test_move_folder_into_descendant(service):
    parent = service.create_folder("parent")
    child = service.create_folder("child", parent_id=parent.id)
    grandchild = service.create_folder("grandchild", parent_id=child.id)

    with pytest.raises(InvalidMove):
        service.update_nodes([parent.id], parent_id=grandchild.id)
    with pytest.raises(InvalidMove):
        service.update_nodes([parent.id], parent_id=parent.id)


def test_move_root(service):
    root = service.folders.resolve_root()
    folder = service.create_folder("docs")

    with pytest.raises(InvalidMove):
        service.update_nodes([root.id], parent_id=folder.id)


def test_move_folder_sideways(service):
    a = service.create_folder("a")
    b = service.create_folder("b")

    service.update_nodes([b.id], parent_id=a.id)

    listing = service.resolve_folder(a.id, with_children=True)
    assert [f.id for f in listing.folders] == [b.id]


def test_update_unknown_node(service):
    with pytest.raises(NodeNotFound):
        service.update_nodes([uuid.uuid4()], name="x")


def test_invalid_identifier(service):
    with pytest.raises(BadRequest):
        service.update_nodes(["not-a-uuid"], name="x")
