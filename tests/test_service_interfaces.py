"""Tests for service and repository interfaces."""

import inspect
from abc import ABC

import pytest

from repositories import interfaces as repo_interfaces
from services import interfaces


def _public_methods(cls):
    return [
        (name, method)
        for name, method in inspect.getmembers(cls, predicate=inspect.isfunction)
        if not name.startswith("_")
    ]


class TestServiceInterfacesExist:
    """Test that all expected interfaces are defined."""

    def test_duel_ledger_service_interface(self):
        """IDuelLedgerService exposes the duel lifecycle."""
        from services.interfaces import IDuelLedgerService

        assert issubclass(IDuelLedgerService, ABC)
        for name in ("create_duel", "get_duel", "place_stake", "resolve", "cancel"):
            assert hasattr(IDuelLedgerService, name)

    def test_probability_tracker_interface(self):
        from services.interfaces import IProbabilityTracker

        assert hasattr(IProbabilityTracker, "maybe_sample")
        assert hasattr(IProbabilityTracker, "history")

    def test_claim_and_settlement_interfaces(self):
        from services.interfaces import IClaimService, ISettlementService

        assert hasattr(IClaimService, "claim")
        assert hasattr(ISettlementService, "settle")


class TestInterfaceMethodsAreAbstract:
    """Test that interface methods are properly abstract."""

    @pytest.mark.parametrize(
        "interface",
        [
            interfaces.IDuelLedgerService,
            interfaces.IProbabilityTracker,
            interfaces.IClaimService,
            interfaces.ISettlementService,
            repo_interfaces.IDuelRepository,
            repo_interfaces.IProbabilityRepository,
            repo_interfaces.ISettlementAccountRepository,
        ],
    )
    def test_methods_abstract(self, interface):
        for name, method in _public_methods(interface):
            assert getattr(method, "__isabstractmethod__", False), (
                f"{interface.__name__}.{name} should be abstract"
            )
        with pytest.raises(TypeError):
            interface()  # type: ignore


class TestImplementationsSatisfyInterfaces:
    """Concrete classes implement their contracts."""

    def test_services_subclass_interfaces(self):
        from services.claim_service import ClaimService
        from services.duel_ledger_service import DuelLedgerService
        from services.probability_tracker_service import ProbabilityTrackerService
        from services.settlement_service import BalanceSettlementService

        assert issubclass(DuelLedgerService, interfaces.IDuelLedgerService)
        assert issubclass(ProbabilityTrackerService, interfaces.IProbabilityTracker)
        assert issubclass(ClaimService, interfaces.IClaimService)
        assert issubclass(BalanceSettlementService, interfaces.ISettlementService)

    def test_repositories_subclass_interfaces(self):
        from repositories.duel_repository import DuelRepository
        from repositories.probability_repository import ProbabilityRepository
        from repositories.settlement_repository import SettlementAccountRepository

        assert issubclass(DuelRepository, repo_interfaces.IDuelRepository)
        assert issubclass(ProbabilityRepository, repo_interfaces.IProbabilityRepository)
        assert issubclass(
            SettlementAccountRepository, repo_interfaces.ISettlementAccountRepository
        )
