"""Wiring a profile sequence to the default collaborators."""

from typing import Optional

from fhir_conformance.client.fhir_client import FHIRServerClient
from fhir_conformance.config import Settings, get_settings
from fhir_conformance.engine.collaborators import SessionState, StaticSessionState
from fhir_conformance.profiles.base import ProfileRuleSet
from fhir_conformance.sequence.runner import ProfileSequence
from fhir_conformance.terminology.service import LocalTerminologyService


def create_sequence(
    rule_set: ProfileRuleSet,
    settings: Optional[Settings] = None,
    client: Optional[FHIRServerClient] = None,
    session: Optional[SessionState] = None,
) -> ProfileSequence:
    """Build a sequence that talks to the configured FHIR server.

    Args:
        rule_set: Profile rule-set to run
        settings: Settings; the cached settings when omitted
        client: FHIR client; built from settings when omitted
        session: Session state; patient ids from settings when omitted
    """
    settings = settings or get_settings()
    client = client or FHIRServerClient(settings=settings)
    session = session or StaticSessionState(patient_ids=settings.patient_id_list)

    return ProfileSequence(
        rule_set=rule_set,
        searcher=client,
        reader=client,
        terminology=LocalTerminologyService.from_settings(settings),
        session=session,
        capabilities=client.capability_statement(),
        max_reference_resolutions=settings.max_reference_resolutions,
        profile_validator=client if settings.server_profile_validation else None,
    )
