import asyncio

from medrecords.application.services.asset_uploader import AssetUploader
from medrecords.application.services.record_committer import RecordCommitter
from medrecords.application.use_cases.submit_medical_record_use_case import (
    SIGNED_OUT_MESSAGE,
    SUCCESS_MESSAGE,
    SubmitMedicalRecordCommand,
    SubmitMedicalRecordUseCase,
)
from medrecords.core.observability.context_vars import get_patient_id, get_subject_id
from medrecords.domain.records.cancellation import SubmissionContext
from medrecords.domain.records.models import (
    DraftState,
    FailureReason,
    IdentityContext,
    SubmissionState,
)
from tests.fakes import (
    PUBLIC_BASE,
    FakeIdentityProvider,
    FakeObjectStore,
    FakeRecordStore,
    make_file,
)

DOCTOR = IdentityContext(subject_id="user-123", email="dr.house@clinic.org")


def _draft(diagnosis: str = "Type 2 diabetes", files=None) -> DraftState:
    draft = DraftState("patient-42", {"diagnosis": diagnosis, "medications": "Metformin"})
    draft.replace_files(files or [])
    return draft


def _use_case(store: FakeObjectStore, records: FakeRecordStore, **kwargs) -> SubmitMedicalRecordUseCase:
    return SubmitMedicalRecordUseCase(AssetUploader(store), RecordCommitter(records), **kwargs)


def _run(use_case, draft, identity=None, context=None):
    provider = identity if identity is not None else FakeIdentityProvider(DOCTOR)
    return asyncio.run(
        use_case.execute(SubmitMedicalRecordCommand(draft=draft, identity_provider=provider, context=context))
    )


def test_committed_file_urls_follow_selection_order() -> None:
    store, records = FakeObjectStore(), FakeRecordStore()
    files = [make_file("front.png"), make_file("back.jpg", content_type="image/jpeg"), make_file("side.png")]

    outcome = _run(_use_case(store, records), _draft(files=files))

    assert outcome.succeeded
    assert outcome.message == SUCCESS_MESSAGE
    expected = [PUBLIC_BASE + path for path in store.put_calls]
    assert outcome.record.file_urls == expected
    assert records.insert_calls[0]["document"]["file_url"] == expected
    assert [path.rsplit("_", 1)[1] for path in store.put_calls] == ["front.png", "back.jpg", "side.png"]
    assert store.resolve_calls == store.put_calls


def test_empty_selection_commits_without_touching_storage() -> None:
    store, records = FakeObjectStore(), FakeRecordStore()

    outcome = _run(_use_case(store, records), _draft(files=[]))

    assert outcome.succeeded
    assert outcome.record.file_urls == []
    assert store.put_calls == []
    assert store.resolve_calls == []
    assert records.insert_calls[0]["document"]["file_url"] == []


def test_missing_identity_fails_without_network_calls() -> None:
    store, records = FakeObjectStore(), FakeRecordStore()
    signed_out = FakeIdentityProvider(None)

    outcome = _run(_use_case(store, records), _draft(files=[make_file()]), identity=signed_out)

    assert outcome.status is SubmissionState.FAILED
    assert outcome.reason is FailureReason.AUTH
    assert outcome.message == SIGNED_OUT_MESSAGE
    assert signed_out.calls == 1
    assert len(store.put_calls) == 0
    assert len(store.resolve_calls) == 0
    assert len(records.insert_calls) == 0


def test_identity_lookup_error_is_an_auth_failure() -> None:
    store, records = FakeObjectStore(), FakeRecordStore()
    expired = FakeIdentityProvider(error=RuntimeError("invalid JWT: token is expired"))

    outcome = _run(_use_case(store, records), _draft(files=[make_file()]), identity=expired)

    assert outcome.reason is FailureReason.AUTH
    assert "token is expired" in outcome.message
    assert store.put_calls == [] and records.insert_calls == []


def test_empty_diagnosis_fails_before_identity_or_network() -> None:
    for identity in (FakeIdentityProvider(DOCTOR), FakeIdentityProvider(None)):
        store, records = FakeObjectStore(), FakeRecordStore()

        outcome = _run(_use_case(store, records), _draft(diagnosis="   ", files=[make_file()]), identity=identity)

        assert outcome.reason is FailureReason.VALIDATION
        assert outcome.message == "Diagnosis is required."
        assert identity.calls == 0
        assert store.put_calls == [] and records.insert_calls == []


def test_second_upload_failure_aborts_batch_and_commit() -> None:
    store, records = FakeObjectStore(fail_put_on={2}), FakeRecordStore()
    files = [make_file("a.png"), make_file("b.png"), make_file("c.png")]

    outcome = _run(_use_case(store, records), _draft(files=files))

    assert outcome.reason is FailureReason.UPLOAD
    assert outcome.message.startswith("Failed to add medical record: Could not upload b.png")
    assert store.successful_puts == 1
    assert len(store.put_calls) == 2
    assert not any(path.endswith("_c.png") for path in store.put_calls)
    assert records.insert_calls == []
    assert outcome.orphaned_paths == (store.put_calls[0],)
    assert store.put_calls[0] in store.objects


def test_resolve_failure_counts_written_object_as_orphan() -> None:
    store, records = FakeObjectStore(fail_resolve_on={1}), FakeRecordStore()

    outcome = _run(_use_case(store, records), _draft(files=[make_file("a.png"), make_file("b.png")]))

    assert outcome.reason is FailureReason.UPLOAD
    assert "could not resolve its URL" in outcome.message
    assert len(store.put_calls) == 1
    assert outcome.orphaned_paths == (store.put_calls[0],)
    assert records.insert_calls == []


def test_commit_failure_leaves_uploaded_assets_as_orphans() -> None:
    store, records = FakeObjectStore(), FakeRecordStore(fail=True)
    files = [make_file("a.png"), make_file("b.png"), make_file("c.png")]

    outcome = _run(_use_case(store, records), _draft(files=files))

    assert outcome.reason is FailureReason.COMMIT
    assert len(store.put_calls) == 3
    assert len(store.resolve_calls) == 3
    assert len(records.insert_calls) == 1
    assert records.rows == []
    assert set(outcome.orphaned_paths) == set(store.put_calls)
    assert store.remove_calls == []


def test_retry_after_failure_uses_fresh_storage_paths() -> None:
    store, records = FakeObjectStore(), FakeRecordStore(fail=True)
    use_case = _use_case(store, records)
    draft = _draft(files=[make_file("xray.png")])

    first = _run(use_case, draft)
    records.fail = False
    second = _run(use_case, draft)

    assert first.reason is FailureReason.COMMIT
    assert second.succeeded
    assert len(store.put_calls) == 2
    assert store.put_calls[0] != store.put_calls[1]
    assert second.record.file_urls == [PUBLIC_BASE + store.put_calls[1]]


def test_same_filename_twice_in_one_batch_does_not_collide() -> None:
    store, records = FakeObjectStore(), FakeRecordStore()

    outcome = _run(_use_case(store, records), _draft(files=[make_file("scan.png"), make_file("scan.png")]))

    assert outcome.succeeded
    assert len(set(store.put_calls)) == 2


def test_success_discards_draft_but_failure_keeps_it() -> None:
    store = FakeObjectStore()
    failed_draft = _draft(files=[make_file()])
    _run(_use_case(store, FakeRecordStore(fail=True)), failed_draft)
    assert failed_draft.fields["diagnosis"] == "Type 2 diabetes"
    assert len(failed_draft.selected_files) == 1
    assert failed_draft.discarded is False

    ok_draft = _draft(files=[make_file()])
    outcome = _run(_use_case(store, FakeRecordStore()), ok_draft)
    assert outcome.succeeded
    assert ok_draft.discarded is True
    assert ok_draft.selected_files == []
    assert outcome.record.fields["diagnosis"] == "Type 2 diabetes"


def test_record_carries_fields_and_creator() -> None:
    records = FakeRecordStore()

    outcome = _run(_use_case(FakeObjectStore(), records), _draft())

    document = records.insert_calls[0]["document"]
    assert records.insert_calls[0]["collection"] == "medical_records"
    assert document["patient_id"] == "patient-42"
    assert document["created_by"] == "user-123"
    assert document["medications"] == "Metformin"
    assert document["allergies"] == ""
    assert outcome.record.id == "rec-1"


def test_listener_sees_every_transition_in_order() -> None:
    seen = []
    use_case = _use_case(FakeObjectStore(), FakeRecordStore(), listener=seen.append)

    _run(use_case, _draft(files=[make_file("a.png"), make_file("b.png")]))

    assert [(p.state, p.index, p.total) for p in seen] == [
        (SubmissionState.VALIDATING, 0, 0),
        (SubmissionState.GATING, 0, 0),
        (SubmissionState.UPLOADING, 0, 2),
        (SubmissionState.UPLOADING, 1, 2),
        (SubmissionState.UPLOADING, 2, 2),
        (SubmissionState.COMMITTING, 0, 0),
        (SubmissionState.SUCCEEDED, 0, 0),
    ]


def test_listener_sees_failure_reason() -> None:
    seen = []
    use_case = _use_case(FakeObjectStore(fail_put_on={1}), FakeRecordStore(), listener=seen.append)

    _run(use_case, _draft(files=[make_file()]))

    assert seen[-1].state is SubmissionState.FAILED
    assert seen[-1].reason is FailureReason.UPLOAD


def test_orphan_cleanup_removes_uploaded_objects_when_enabled() -> None:
    store, records = FakeObjectStore(), FakeRecordStore(fail=True)
    use_case = _use_case(store, records, cleanup_orphans=True)

    outcome = _run(use_case, _draft(files=[make_file("a.png"), make_file("b.png")]))

    assert outcome.reason is FailureReason.COMMIT
    assert store.remove_calls == [store.put_calls]
    assert store.objects == {}
    assert outcome.orphaned_paths == ()
    assert records.rows == []


def test_orphan_cleanup_failure_does_not_change_outcome() -> None:
    store, records = FakeObjectStore(fail_put_on={2}, fail_remove=True), FakeRecordStore()
    use_case = _use_case(store, records, cleanup_orphans=True)

    outcome = _run(use_case, _draft(files=[make_file("a.png"), make_file("b.png")]))

    assert outcome.reason is FailureReason.UPLOAD
    assert len(store.remove_calls) == 1
    assert outcome.orphaned_paths == (store.put_calls[0],)


def test_cancelled_context_stops_before_next_step() -> None:
    store, records = FakeObjectStore(), FakeRecordStore()
    context = SubmissionContext()

    def _cancel_after_first_upload(progress) -> None:
        if progress.state is SubmissionState.UPLOADING and progress.index == 1:
            context.cancel("form closed")

    use_case = _use_case(store, records, listener=_cancel_after_first_upload)

    outcome = _run(use_case, _draft(files=[make_file("a.png"), make_file("b.png")]), context=context)

    assert outcome.reason is FailureReason.CANCELLED
    assert "form closed" in outcome.message
    assert len(store.put_calls) == 1
    assert records.insert_calls == []
    assert outcome.orphaned_paths == (store.put_calls[0],)


def test_context_vars_are_restored_after_execute() -> None:
    _run(_use_case(FakeObjectStore(), FakeRecordStore()), _draft())

    assert get_subject_id() is None
    assert get_patient_id() is None


def test_concurrent_submissions_for_different_patients_are_independent() -> None:
    store, records = FakeObjectStore(), FakeRecordStore()
    use_case = _use_case(store, records)

    async def _both():
        first = DraftState("patient-a", {"diagnosis": "Asthma"})
        first.replace_files([make_file("a.png")])
        second = DraftState("patient-b", {"diagnosis": "Migraine"})
        second.replace_files([make_file("b.png"), make_file("c.png")])
        provider = FakeIdentityProvider(DOCTOR)
        return await asyncio.gather(
            use_case.execute(SubmitMedicalRecordCommand(draft=first, identity_provider=provider)),
            use_case.execute(SubmitMedicalRecordCommand(draft=second, identity_provider=provider)),
        )

    first, second = asyncio.run(_both())

    assert first.succeeded and second.succeeded
    assert all("/patient-a/" in url for url in first.record.file_urls)
    assert all("/patient-b/" in url for url in second.record.file_urls)
    assert len(second.record.file_urls) == 2


def test_unsafe_patient_id_is_rejected_before_any_store_call() -> None:
    for patient_id in ("..", "p?x=1", "p#frag", "-leading"):
        store, records = FakeObjectStore(), FakeRecordStore()
        identity = FakeIdentityProvider(DOCTOR)
        draft = DraftState(patient_id, {"diagnosis": "Type 2 diabetes"})
        draft.replace_files([make_file("scan.png")])

        outcome = _run(_use_case(store, records), draft, identity=identity)

        assert outcome.reason is FailureReason.VALIDATION, patient_id
        assert identity.calls == 0
        assert store.put_calls == []
        assert records.insert_calls == []
