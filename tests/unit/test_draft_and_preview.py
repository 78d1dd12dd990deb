import base64

import pytest

from medrecords.application.services.preview_service import PreviewService
from medrecords.domain.records.models import DraftState, LocalFile
from tests.fakes import make_file


def test_draft_requires_patient_id() -> None:
    with pytest.raises(ValueError, match="patient_id"):
        DraftState("  ")


def test_draft_defaults_optional_fields_to_empty() -> None:
    draft = DraftState("p1", {"diagnosis": "Otitis"})

    assert draft.fields == {
        "diagnosis": "Otitis",
        "treatment_plan": "",
        "medications": "",
        "allergies": "",
        "medical_history": "",
    }


def test_draft_rejects_unknown_fields() -> None:
    draft = DraftState("p1")

    with pytest.raises(KeyError):
        draft.set_field("blood_type", "O+")


def test_discard_clears_fields_and_files() -> None:
    draft = DraftState("p1", {"diagnosis": "Otitis"})
    draft.replace_files([make_file()])

    draft.discard()

    assert draft.discarded is True
    assert draft.selected_files == []
    assert draft.fields["diagnosis"] == ""
    assert draft.patient_id == "p1"


def test_local_file_from_path(tmp_path) -> None:
    target = tmp_path / "xray.jpeg"
    target.write_bytes(b"jpeg-bytes")

    local = LocalFile.from_path(target)

    assert local.filename == "xray.jpeg"
    assert local.content_type == "image/jpeg"
    assert local.size == len(b"jpeg-bytes")


def test_preview_handles_are_local_data_urls_in_selection_order() -> None:
    files = [make_file("a.png", data=b"A"), make_file("b.jpg", data=b"BB", content_type="image/jpeg")]

    handles = PreviewService().build_handles(files)

    assert [h.filename for h in handles] == ["a.png", "b.jpg"]
    assert handles[0].url == "data:image/png;base64," + base64.b64encode(b"A").decode()
    assert handles[1].size_bytes == 2
    assert handles[1].url.startswith("data:image/jpeg;base64,")
