import pytest

from screenflow.canonical import canonicalize
from screenflow.errors import (
    FailedPreconditionError,
    InvalidBindingTypeError,
    MissingRequiredBindingError,
    ScenarioMismatchError,
)
from screenflow.models import ScenarioType
from screenflow.packs import (
    CATALOG,
    ActionPackDefinition,
    BindingRequirement,
    BindingValueType,
    PackSelection,
    PackStep,
    Precondition,
    StepType,
    all_packs,
    find_pack,
    resolve_bindings,
    select_packs,
    validate_selection,
)
from screenflow.spec import JobEntities, PackSuggestion, ScreenFlowEntities

from conftest import error_spec, event_spec, job_spec


def _pack(**overrides):
    values = dict(
        id="job_listing.test",
        version="1.0.0",
        scenario=ScenarioType.JOB_LISTING,
        required_bindings=(BindingRequirement("job.company"),),
        steps=(PackStep("export", StepType.EXPORT_BINDINGS_JSON, "out.json"),),
    )
    values.update(overrides)
    return ActionPackDefinition(**values)


def test_catalog_is_sorted_and_complete():
    ids = [pack.id for pack in all_packs()]
    assert ids == sorted(ids)
    assert ids == [
        "error_log.create_debug_checklist",
        "error_log.generate_issue_template",
        "event_flyer.add_to_calendar",
        "event_flyer.create_share_card",
        "job_listing.draft_application_email",
        "job_listing.save_tracker",
    ]
    assert all(pack.version == "1.0.0" for pack in CATALOG)


def test_catalog_definitions_are_immutable():
    with pytest.raises(AttributeError):
        CATALOG[0].version = "2.0.0"


def test_selection_puts_suggestions_first_then_registry_order():
    spec = job_spec(
        pack_suggestions=[
            PackSuggestion(pack_id="job_listing.draft_application_email", confidence=0.4, bindings={"job.role": "Lead"}),
            PackSuggestion(pack_id="event_flyer.add_to_calendar", confidence=0.99),
            PackSuggestion(pack_id="job_listing.draft_application_email", confidence=0.3),
            PackSuggestion(pack_id="unknown.pack", confidence=0.9),
        ]
    )
    selections = select_packs(spec)
    assert [s.pack.id for s in selections] == [
        "job_listing.draft_application_email",
        "job_listing.save_tracker",
    ]
    assert selections[0].suggested_bindings == {"job.role": "Lead"}
    assert selections[1].suggested_bindings == {}


def test_selection_ties_break_on_pack_id():
    spec = job_spec(
        pack_suggestions=[
            PackSuggestion(pack_id="job_listing.save_tracker", confidence=0.5),
            PackSuggestion(pack_id="job_listing.draft_application_email", confidence=0.5),
        ]
    )
    assert [s.pack.id for s in select_packs(spec)] == [
        "job_listing.draft_application_email",
        "job_listing.save_tracker",
    ]


def test_selection_includes_every_eligible_pack_once():
    for spec in (job_spec(), event_spec(), error_spec()):
        ids = [s.pack.id for s in select_packs(spec)]
        eligible = {pack.id for pack in CATALOG if pack.scenario is spec.scenario}
        assert len(ids) == len(set(ids))
        assert set(ids) == eligible


def test_resolve_bindings_flattens_job_entities():
    bindings = resolve_bindings(canonicalize(job_spec()))
    assert bindings["job.company"] == "Acme Corp"
    assert bindings["job.skills"] == "Swift, SwiftUI"
    assert bindings["job.salaryRange.min"] == "150000.0"
    assert bindings["job.salaryRange.currency"] == "USD"


def test_validation_filters_to_declared_keys_and_applies_overrides():
    spec = canonicalize(job_spec())
    pack = find_pack("job_listing.save_tracker")
    validated = validate_selection(PackSelection(pack, {"job.company": "  Acme  Labs ", "extra.key": "x"}), spec)
    assert validated.bindings == {
        "job.company": "Acme Labs",
        "job.role": "Senior iOS Engineer",
        "job.location": "Remote",
        "job.link": "https://acme.example/jobs/42",
        "job.salaryRange.min": "150000.0",
        "job.salaryRange.max": "190000.0",
        "job.salaryRange.currency": "USD",
    }


def test_missing_required_binding():
    spec = job_spec(entities=ScreenFlowEntities(job=JobEntities(role="Engineer")))
    with pytest.raises(MissingRequiredBindingError) as excinfo:
        validate_selection(PackSelection(find_pack("job_listing.save_tracker")), spec)
    assert excinfo.value.key == "job.company"


def test_number_binding_must_parse():
    pack = _pack(required_bindings=(BindingRequirement("job.salaryRange.min", BindingValueType.NUMBER),))
    spec = job_spec()
    with pytest.raises(InvalidBindingTypeError) as excinfo:
        validate_selection(PackSelection(pack, {"job.salaryRange.min": "abc"}), spec)
    assert excinfo.value.key == "job.salaryRange.min"
    assert validate_selection(PackSelection(pack), spec).bindings == {"job.salaryRange.min": "150000.0"}


def test_precondition_is_case_insensitive_substring():
    pack = _pack(preconditions=(Precondition("job.location", contains="REMOTE"),))
    assert validate_selection(PackSelection(pack), job_spec()).bindings["job.company"] == "Acme Corp"
    with pytest.raises(FailedPreconditionError):
        validate_selection(PackSelection(pack, {"job.location": "Berlin office"}), job_spec())


def test_precondition_without_contains_is_ignored():
    pack = _pack(preconditions=(Precondition("job.nothing"),))
    validate_selection(PackSelection(pack), job_spec())


def test_scenario_mismatch():
    with pytest.raises(ScenarioMismatchError) as excinfo:
        validate_selection(PackSelection(find_pack("event_flyer.add_to_calendar")), job_spec())
    assert excinfo.value.expected == "event_flyer"
    assert excinfo.value.actual == "job_listing"


@pytest.mark.parametrize("value", ["1_000", "1 000", "inf", "nan", "1e999", "$150000", "0x10"])
def test_number_binding_rejects_non_decimal_forms(value):
    pack = _pack(required_bindings=(BindingRequirement("job.salaryRange.min", BindingValueType.NUMBER),))
    with pytest.raises(InvalidBindingTypeError):
        validate_selection(PackSelection(pack, {"job.salaryRange.min": value}), job_spec())


@pytest.mark.parametrize("value", ["150000", "-1.5", ".5", "1e5", "+2."])
def test_number_binding_accepts_decimal_forms(value):
    pack = _pack(required_bindings=(BindingRequirement("job.salaryRange.min", BindingValueType.NUMBER),))
    bindings = validate_selection(PackSelection(pack, {"job.salaryRange.min": value}), job_spec()).bindings
    assert bindings == {"job.salaryRange.min": value}
