"""
Bank Correspondence Hub - Simulated Intake

Fallback generator of plausible bank notifications for demos and local runs
without a real intake webhook. Disabled unless SIMULATED_INTAKE_ENABLED=true.
"""

import logging
import random
from typing import Dict, Any, Optional

from .correspondence_hub import CorrespondenceHub, IntakeRunStats
from .hub_models import Category, utc_now
from .workflow_engine import IntakeSource

logger = logging.getLogger(__name__)

DEFAULT_SKIP_PROBABILITY = 0.2

# Bank -> sender domain
BANK_DOMAINS: Dict[str, str] = {
    "Stanbic Bank": "stanbic.co.ug",
    "Centenary Bank": "centenarybank.co.ug",
    "Equity Bank": "equitybank.co.ug",
    "dfcu Bank": "dfcugroup.com",
    "Absa Bank Uganda": "absa.africa",
    "Housing Finance Bank": "housingfinance.co.ug",
    "DTB Uganda": "dtbafrica.com",
    "KCB Bank": "kcbgroup.com",
}
FALLBACK_DOMAIN = "bank.co.ug"


class SimulatedIntakeGenerator:
    """
    Produces one synthetic message per run_once() call, skipping a fraction of
    cycles so the queue fills at an uneven pace.
    """

    def __init__(
        self,
        hub: CorrespondenceHub,
        rng: Optional[random.Random] = None,
        skip_probability: float = DEFAULT_SKIP_PROBABILITY
    ):
        self.hub = hub
        self.rng = rng or random.Random()
        self.skip_probability = skip_probability
        self._index = 0

    def generate_message(self, index: int) -> Dict[str, Any]:
        bank = self.rng.choice(list(BANK_DOMAINS))
        category = self.rng.choice(list(Category)).value
        domain = BANK_DOMAINS.get(bank, FALLBACK_DOMAIN)
        reference = self.rng.randint(1000, 10999)
        account = self.rng.randint(1000, 9999)
        amount = self.rng.randint(0, 9_999_999)
        now = utc_now()

        return {
            "id": f"mock-{index}-{int(now.timestamp() * 1000)}",
            "sender": f"notifications@{domain}",
            "subject": f"{category} - Ref #{reference}",
            "body": (
                f"This is an automated notification regarding {category} for account ending in {account}. "
                f"Amount involved: UGX {amount:,}. Please review the attached details and take necessary action."
            ),
            "bankName": bank,
            "receivedAt": now.isoformat(),
            "attachments": ["statement.pdf"],
        }

    async def run_once(self) -> Optional[IntakeRunStats]:
        """Ingest one simulated message, or None when this cycle is skipped."""
        if self.rng.random() < self.skip_probability:
            logger.debug("Simulated intake cycle skipped")
            return None
        self._index += 1
        message = self.generate_message(self._index)
        return await self.hub.ingest([message], IntakeSource.SIMULATION)
