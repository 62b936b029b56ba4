# =============================================================================
# Unit Tests — Conflict Resolver
# =============================================================================

from __future__ import annotations

from agentmesh.agents.conflict import ConflictResolver, extract_numeric_claim, lookup_path
from agentmesh.agents.context import SharedContext, agent_data_key
from agentmesh.agents.types import AgentResponse


def _response(agent_id: int, text: str) -> AgentResponse:
    return AgentResponse(agent_id=agent_id, agent_name=f"Agent{agent_id}", response=text)


def _context(confidences: dict[int, float]) -> SharedContext:
    ctx = SharedContext()
    for agent_id, confidence in confidences.items():
        ctx.set(agent_data_key(agent_id), {"raw_details": {"confidence": confidence}})
    return ctx


class TestExtractNumericClaim:

    def test_matches_total_amount(self):
        assert extract_numeric_claim("Total amount invoiced: $1,200.50") == "1,200.50"

    def test_case_insensitive(self):
        assert extract_numeric_claim("the TOTAL AMOUNT due: $30") == "30"

    def test_no_claim(self):
        assert extract_numeric_claim("Revenue grew by 15%") is None

    def test_none_text(self):
        assert extract_numeric_claim(None) is None


class TestLookupPath:

    def test_nested(self):
        ctx = _context({1: 0.9})
        assert lookup_path(ctx, "agent_1_data.raw_details.confidence") == 0.9

    def test_missing_returns_default(self):
        assert lookup_path(SharedContext(), "agent_1_data.raw_details.confidence", 0.5) == 0.5

    def test_non_dict_intermediate_returns_default(self):
        ctx = SharedContext()
        ctx.set("agent_1_data", "oops")
        assert lookup_path(ctx, "agent_1_data.raw_details", "d") == "d"


class TestConflictResolver:

    def test_highest_confidence_wins(self):
        high = _response(1, "Total amount billed: $900")
        low = _response(2, "Total amount billed: $400")
        resolved = ConflictResolver().resolve([high, low], _context({1: 0.9, 2: 0.4}))
        assert resolved == [high]

    def test_non_numeric_responses_pass_through(self):
        claim_a = _response(1, "Total amount: $10")
        claim_b = _response(2, "Total amount: $20")
        prose = _response(3, "The customer is based in Lisbon.")
        resolved = ConflictResolver().resolve(
            [claim_a, prose, claim_b], _context({1: 0.3, 2: 0.7}),
        )
        assert resolved == [prose, claim_b]

    def test_ties_keep_all(self):
        a = _response(1, "Total amount: $10")
        b = _response(2, "Total amount: $20")
        resolved = ConflictResolver().resolve([a, b], _context({1: 0.6, 2: 0.6}))
        assert resolved == [a, b]

    def test_default_confidence_when_missing(self):
        known = _response(1, "Total amount: $10")
        unknown = _response(2, "Total amount: $20")
        # unknown defaults to 0.5, so 0.4 loses
        resolved = ConflictResolver().resolve([known, unknown], _context({1: 0.4}))
        assert resolved == [unknown]

    def test_not_a_majority_vote(self):
        agreeing = [_response(i, "Total amount: $100") for i in (1, 2, 3)]
        confident = _response(4, "Total amount: $250")
        ctx = _context({1: 0.3, 2: 0.3, 3: 0.3, 4: 0.95})
        assert ConflictResolver().resolve([*agreeing, confident], ctx) == [confident]

    def test_no_claims_returns_input(self):
        responses = [_response(1, "alpha"), _response(2, "beta")]
        assert ConflictResolver().resolve(responses, SharedContext()) == responses

    def test_empty(self):
        assert ConflictResolver().resolve([], SharedContext()) == []
