from __future__ import annotations

from datetime import datetime
from typing import Callable, Dict, List

import structlog

from ..data_model import CalculationType, Customer, SavedCalculation
from ..errors import LaskuriError, NotFoundError
from .calculations import (
    create_saved_calculation,
    duplicate_calculation,
    new_uuid,
    recalculate_invoice,
    update_calculation_customer,
    update_calculation_details,
    utc_now,
)
from .storage import JsonDocumentStore

logger = structlog.get_logger()


class CalculationManager:
    """Store-backed saved-calculation operations.

    Keeps ``Customer.calculation_ids`` in step with the calculations
    collection. Index updates are best effort: a failure is logged and the
    calculation write that triggered it stands. ``rebuild_calculation_index``
    repairs any drift.
    """

    def __init__(
        self,
        store: JsonDocumentStore,
        clock: Callable[[], datetime] | None = None,
        id_factory: Callable[[], str] | None = None,
    ):
        self.store = store
        self._clock = clock or utc_now
        self._new_id = id_factory or new_uuid
        self.logger = logger

    def now(self) -> datetime:
        return self._clock()

    async def list_calculations(self) -> List[SavedCalculation]:
        return await self.store.load_calculations()

    async def get_calculation(self, calculation_id: str) -> SavedCalculation:
        calc = await self.store.get_calculation(calculation_id)
        if calc is None:
            raise NotFoundError("Calculation", calculation_id)
        return calc

    async def calculations_for_customer(self, customer_id: str) -> List[SavedCalculation]:
        return [c for c in await self.store.load_calculations() if c.customer_id == customer_id]

    async def add_calculation(self, calc: SavedCalculation) -> List[SavedCalculation]:
        calculations = await self.store.add_calculation(calc)
        await self._link(calc.customer_id, calc.id)
        return calculations

    async def update_calculation(self, calc: SavedCalculation) -> List[SavedCalculation]:
        calculations = await self.store.update_calculation(calc)
        await self._link(calc.customer_id, calc.id)
        return calculations

    async def delete_calculation(self, calculation_id: str) -> List[SavedCalculation]:
        target = await self.store.get_calculation(calculation_id)
        calculations = await self.store.delete_calculation(calculation_id)
        if target is not None:
            await self._unlink(target.customer_id, calculation_id)
        return calculations

    async def create_calculation(
        self,
        customer: Customer,
        name: str,
        calculation_type: CalculationType = CalculationType.DRAFT,
        description: str = "",
        notes: str = "",
        vat_rate: float | None = None,
    ) -> SavedCalculation:
        calc = create_saved_calculation(
            customer,
            name,
            calculation_type,
            description,
            notes,
            vat_rate,
            now=self.now(),
            new_id=self._new_id,
        )
        await self.add_calculation(calc)
        self.logger.info("calculation_created", calculation_id=calc.id, customer_id=calc.customer_id)
        return calc

    async def duplicate_calculation(self, calculation_id: str, new_name: str | None = None) -> SavedCalculation:
        original = await self.get_calculation(calculation_id)
        copy = duplicate_calculation(original, new_name, now=self.now(), new_id=self._new_id)
        await self.add_calculation(copy)
        self.logger.info("calculation_duplicated", source_id=calculation_id, calculation_id=copy.id)
        return copy

    async def recalculate_calculation(self, calculation_id: str, vat_rate: float | None = None) -> SavedCalculation:
        calc = recalculate_invoice(await self.get_calculation(calculation_id), vat_rate, now=self.now())
        await self.update_calculation(calc)
        return calc

    async def update_calculation_customer(self, calculation_id: str, customer: Customer) -> SavedCalculation:
        calc = update_calculation_customer(await self.get_calculation(calculation_id), customer, now=self.now())
        await self.update_calculation(calc)
        return calc

    async def update_calculation_details(self, calculation_id: str, **changes) -> SavedCalculation:
        calc = update_calculation_details(await self.get_calculation(calculation_id), now=self.now(), **changes)
        await self.update_calculation(calc)
        return calc

    async def rebuild_calculation_index(self) -> List[Customer]:
        """Recompute every customer's ``calculation_ids`` from the calculations.

        Ids still valid keep their order; newly found ids are appended in
        collection order.
        """
        customers = await self.store.load_customers()
        calculations = await self.store.load_calculations()

        linked: Dict[str, List[str]] = {}
        for calc in calculations:
            linked.setdefault(calc.customer_id, []).append(calc.id)

        changed = 0
        for customer in customers:
            found = linked.pop(customer.id, [])
            if not found and customer.calculation_ids is None:
                continue
            kept = [cid for cid in customer.calculation_ids or [] if cid in found]
            rebuilt = kept + [cid for cid in found if cid not in kept]
            if rebuilt != customer.calculation_ids:
                customer.calculation_ids = rebuilt
                changed += 1

        if changed:
            await self.store.save_customers(customers)
        self.logger.info(
            "calculation_index_rebuilt",
            customers_changed=changed,
            orphaned_calculations=sum(len(ids) for ids in linked.values()),
        )
        return customers

    async def _link(self, customer_id: str, calculation_id: str) -> None:
        try:
            customer = await self.store.get_customer(customer_id)
            if customer is None:
                self.logger.warning(
                    "calculation_index_customer_missing",
                    customer_id=customer_id,
                    calculation_id=calculation_id,
                )
                return
            ids = customer.calculation_ids or []
            if calculation_id in ids:
                return
            customer.calculation_ids = ids + [calculation_id]
            await self.store.update_customer(customer)
        except LaskuriError as exc:
            self.logger.error(
                "calculation_index_link_failed",
                customer_id=customer_id,
                calculation_id=calculation_id,
                error=str(exc),
            )

    async def _unlink(self, customer_id: str, calculation_id: str) -> None:
        try:
            customer = await self.store.get_customer(customer_id)
            if customer is None or not customer.calculation_ids:
                return
            if calculation_id not in customer.calculation_ids:
                return
            customer.calculation_ids = [cid for cid in customer.calculation_ids if cid != calculation_id]
            await self.store.update_customer(customer)
        except LaskuriError as exc:
            self.logger.error(
                "calculation_index_unlink_failed",
                customer_id=customer_id,
                calculation_id=calculation_id,
                error=str(exc),
            )
