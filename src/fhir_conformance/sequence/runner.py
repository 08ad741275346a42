"""Profile sequence runner.

Runs the checks of one profile rule-set against a server in a fixed order.
Searches and reads gather the resource collection; binding, must-support and
reference checks then judge it. Each check reports exactly one outcome, and
a check that cannot run because nothing was collected is skipped.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from fhir_conformance.engine.absence import AbsenceMarkerChecker, DataAbsentReasonChecker
from fhir_conformance.engine.bindings import BindingValidator
from fhir_conformance.engine.collaborators import (
    CapabilityLookup,
    ProfileValidator,
    ResourceReader,
    ResourceReference,
    SearchExecutor,
    SearchReply,
    SessionState,
    TerminologyLookup,
)
from fhir_conformance.engine.must_support import MustSupportTracker
from fhir_conformance.engine.outcomes import ValidationOutcome, worst_status
from fhir_conformance.engine.paths import find_element
from fhir_conformance.engine.references import DEFAULT_MAX_RESOLUTIONS, ReferenceResolver
from fhir_conformance.engine.search import ComparisonMode, SearchParamMatcher
from fhir_conformance.engine.sweep import StatusSweepSearcher, SweepResult
from fhir_conformance.profiles.base import ProfileRuleSet
from fhir_conformance.sequence.context import RunContext, SequenceResult
from fhir_conformance.utils.exceptions import AssertionFailure, ConformanceError, SkipCheck
from fhir_conformance.utils.logging import get_logger

logger = get_logger(__name__)

CHECK_ORDER = (
    "search_by_patient",
    "search_combinations",
    "resource_read",
    "validate_resources",
    "must_support",
    "reference_resolution",
)


class ProfileSequence:
    """Conformance checks for one resource type and profile."""

    def __init__(
        self,
        rule_set: ProfileRuleSet,
        searcher: SearchExecutor,
        reader: ResourceReader,
        terminology: TerminologyLookup,
        session: SessionState,
        capabilities: Optional[CapabilityLookup] = None,
        max_reference_resolutions: int = DEFAULT_MAX_RESOLUTIONS,
        absence_checker: Optional[AbsenceMarkerChecker] = None,
        profile_validator: Optional[ProfileValidator] = None,
    ):
        """Initialize sequence.

        Args:
            rule_set: Profile data for the resource type
            searcher: Search collaborator
            reader: Read collaborator
            terminology: Terminology lookup collaborator
            session: Patient ids and previously discovered references
            capabilities: Server self-description, when available
            max_reference_resolutions: Budget for reference resolution
            absence_checker: Recognises data absent markers
            profile_validator: Structural validator run before binding checks
        """
        self.rule_set = rule_set
        self.reader = reader
        self.session = session
        self.capabilities = capabilities
        self.profile_validator = profile_validator
        self.absence_checker = absence_checker or DataAbsentReasonChecker()

        self.matcher = SearchParamMatcher(rule_set.search_params)
        self.sweeper = StatusSweepSearcher(
            searcher,
            rule_set.resource_type,
            rule_set.status_values,
            matcher=self.matcher,
            capabilities=capabilities,
            status_param=rule_set.status_param,
        )
        self.binding_validator = BindingValidator(
            terminology, rule_set.bindings, self.absence_checker
        )
        self.must_support_tracker = MustSupportTracker(
            rule_set.must_supports, self.absence_checker
        )
        self.reference_resolver = ReferenceResolver(reader, max_reference_resolutions)

    @property
    def resource_type(self) -> str:
        """Resource type under test."""
        return self.rule_set.resource_type

    def run(self) -> SequenceResult:
        """Run every check in order."""
        context = RunContext(resource_type=self.resource_type)
        checks: Dict[str, Callable[[str, RunContext], ValidationOutcome]] = {
            "search_by_patient": self.search_by_patient,
            "search_combinations": self.search_combinations,
            "resource_read": self.resource_read,
            "validate_resources": self.validate_resources,
            "must_support": self.must_support,
            "reference_resolution": self.reference_resolution,
        }
        outcomes = [self._run_check(name, checks[name], context) for name in CHECK_ORDER]
        status = worst_status(outcomes)
        logger.info("sequence_completed", resource_type=self.resource_type, status=status.value)
        return SequenceResult(outcomes=outcomes, status=status, context=context)

    def _run_check(
        self,
        name: str,
        check: Callable[[str, RunContext], ValidationOutcome],
        context: RunContext,
    ) -> ValidationOutcome:
        try:
            outcome = check(name, context)
        except SkipCheck as e:
            outcome = ValidationOutcome.skipped(name, e.message)
        except ConformanceError as e:
            outcome = ValidationOutcome.failed(name, e.message)
        except Exception as e:
            # One broken check must not take down the others
            logger.exception("check_errored", check=name)
            outcome = ValidationOutcome.failed(name, f"Unexpected error: {e}")

        logger.info(
            "check_completed",
            check=name,
            status=outcome.status.value,
            message=outcome.message,
            warnings=len(outcome.warnings),
        )
        return outcome

    def _skip_if_known_not_supported(self, interactions: Sequence[str]) -> None:
        if self.capabilities is not None and self.capabilities.known_not_supported(
            self.resource_type, interactions
        ):
            raise SkipCheck(
                f"This server does not support {self.resource_type} "
                f"{', '.join(interactions)} operation(s) according to conformance statement."
            )

    def _skip_if_not_found(self, context: RunContext) -> None:
        if not context.resources_found:
            raise SkipCheck(
                f"No {self.resource_type} resources appear to be available. "
                "Please use patients with more information."
            )

    def _search(self, params: Mapping[str, str], context: RunContext) -> SweepResult:
        result = self.sweeper.search(params)
        self._assert_search_reply(result.reply)
        if result.status_value is not None:
            context.status_value = result.status_value

        entries = result.reply.resources_of_type(self.resource_type)
        for entry in entries:
            self.matcher.assert_matches_params(entry, result.params)
        for entry in entries:
            context.data_absent = context.data_absent.merge(self.absence_checker.scan(entry))
        context.add_resources(entries)
        return result

    def _assert_search_reply(self, reply: SearchReply) -> None:
        if not reply.ok:
            raise AssertionFailure(
                f"Bad response code: expected 200, 201, but found {reply.status_code}"
            )
        if not reply.body or reply.body.get("resourceType") != "Bundle":
            found = (reply.body or {}).get("resourceType", "nothing")
            raise AssertionFailure(f"Expected FHIR Bundle but found: {found}")

    def search_by_patient(self, name: str, context: RunContext) -> ValidationOutcome:
        """Search by each session patient and check results match the patient."""
        self._skip_if_known_not_supported(["search"])
        patient_ids = list(self.session.patient_ids)
        if not patient_ids:
            raise SkipCheck("No patient ids were provided for searching")

        warnings: List[str] = []
        for patient_id in patient_ids:
            result = self._search({"patient": patient_id}, context)
            warnings.extend(w for w in result.warnings if w not in warnings)

        self._skip_if_not_found(context)
        return ValidationOutcome.passed(
            name,
            f"Found {len(context.resources)} {self.resource_type} resource(s) "
            f"for {len(patient_ids)} patient(s)",
            warnings,
        )

    def search_combinations(self, name: str, context: RunContext) -> ValidationOutcome:
        """Search with further parameter combinations built from found resources."""
        self._skip_if_known_not_supported(["search"])
        self._skip_if_not_found(context)

        warnings: List[str] = []
        searched = 0
        for combination in self.rule_set.search_combinations:
            if combination == ("patient",):
                continue
            params = self.derive_search_params(combination, context)
            if params is None:
                warnings.append(
                    f"Could not find values for {', '.join(combination)} "
                    f"in the {len(context.resources)} {self.resource_type} resource(s)"
                )
                continue
            result = self._search(params, context)
            warnings.extend(w for w in result.warnings if w not in warnings)
            searched += 1

        return ValidationOutcome.passed(
            name, f"{searched} search combination(s) verified", warnings
        )

    def derive_search_params(
        self, combination: Sequence[str], context: RunContext
    ) -> Optional[Dict[str, str]]:
        """Values for each parameter taken from one found resource, if any has all."""
        for resource in context.resources:
            params = {}
            for param in combination:
                value = self._search_value(param, resource, context)
                if value is None:
                    break
                params[param] = value
            else:
                return params
        return None

    def _search_value(
        self, param: str, resource: Dict[str, Any], context: RunContext
    ) -> Optional[str]:
        spec = self.matcher.specs[param]
        if param == self.rule_set.status_param and context.status_value:
            return context.status_value

        element = find_element(resource, spec.path)
        if element is None:
            return None

        if spec.mode == ComparisonMode.DATE:
            if isinstance(element, dict):
                if element.get("start"):
                    return f"ge{element['start']}"
                if element.get("end"):
                    return f"le{element['end']}"
                return None
            return f"eq{element}" if isinstance(element, str) else None

        if not isinstance(element, str):
            return None
        if spec.mode == ComparisonMode.REFERENCE:
            prefix = f"{spec.target_type}/" if spec.target_type else ""
            return element[len(prefix):] if prefix and element.startswith(prefix) else element
        return element.replace(",", "\\,")

    def resource_read(self, name: str, context: RunContext) -> ValidationOutcome:
        """Read every known reference of the type and check the server returns it."""
        self._skip_if_known_not_supported(["read"])

        references: List[ResourceReference] = []
        for reference in list(self.session.resource_references) + context.references:
            if reference.resource_type == self.resource_type and reference not in references:
                references.append(reference)
        if not references:
            raise SkipCheck(f"No {self.resource_type} references found from the prior searches")

        for reference in references:
            reply = self.reader.read(reference.resource_type, reference.resource_id)
            if not reply.ok:
                raise AssertionFailure(
                    f"Bad response code reading {reference.reference}: {reply.status_code}"
                )
            resource = reply.resource or {}
            if resource.get("resourceType") != self.resource_type:
                raise AssertionFailure(
                    f"Expected {self.resource_type} resource for {reference.reference}, "
                    f"received {resource.get('resourceType')}"
                )
            if resource.get("id") != reference.resource_id:
                raise AssertionFailure(
                    f"Expected resource to contain id: {reference.resource_id}, "
                    f"received {resource.get('id')}"
                )
            context.data_absent = context.data_absent.merge(self.absence_checker.scan(resource))
            context.add_resources([resource])

        return ValidationOutcome.passed(
            name, f"Read {len(references)} {self.resource_type} resource(s)"
        )

    def validate_resources(self, name: str, context: RunContext) -> ValidationOutcome:
        """Check the collection against the profile, then its terminology bindings."""
        self._skip_if_not_found(context)
        if self.profile_validator is not None:
            self._assert_conforms_to_profile(context.resources)
        return self.binding_validator.check(context.resources, name)

    def _assert_conforms_to_profile(self, resources: Sequence[Dict[str, Any]]) -> None:
        errors: List[str] = []
        for resource in resources:
            label = f"{resource.get('resourceType')}/{resource.get('id')}"
            errors.extend(
                f"{label}: {message}"
                for message in self.profile_validator.validate(
                    resource, self.rule_set.profile_url
                )
            )
        logger.info(
            "profile_validated",
            profile=self.rule_set.profile_url,
            resources=len(resources),
            errors=len(errors),
        )
        if errors:
            raise AssertionFailure(
                f"{len(errors)} error(s) found validating against "
                f"{self.rule_set.profile_url}: {'. '.join(errors)}"
            )

    def must_support(self, name: str, context: RunContext) -> ValidationOutcome:
        """Check every must-support element appears in some resource."""
        self._skip_if_not_found(context)
        return self.must_support_tracker.check(context.resources, self.resource_type, name)

    def reference_resolution(self, name: str, context: RunContext) -> ValidationOutcome:
        """Check references in the collection resolve."""
        self._skip_if_known_not_supported(["search", "read"])
        self._skip_if_not_found(context)
        return self.reference_resolver.check(context.resources, name)
