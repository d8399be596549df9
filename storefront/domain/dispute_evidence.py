# storefront/domain/dispute_evidence.py
"""
Dowody do sporu (chargeback) przygotowane przez sprzedawce.

Pliki siedza w jawnie nazwanych slotach (AttachmentSlot), limity rozmiaru
i typow zaleza od procesora platnosci zakupu.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Tuple

SUBMIT_EVIDENCE_WINDOW_DURATION_IN_HOURS = 72
MINIMUM_RECOMMENDED_CUSTOMER_COMMUNICATION_FILE_SIZE = 1_000_000
MAX_TEXT_LENGTH = 3_000

RESOLUTION_UNKNOWN = "unknown"
RESOLUTION_SUBMITTED = "submitted"
RESOLUTION_REJECTED = "rejected"


@dataclass(frozen=True)
class EvidenceLimits:
    max_combined_file_size: int
    allowed_content_types: Tuple[str, ...]
    allowed_extensions: Tuple[str, ...]
    requires_png_conversion: bool
    max_individual_file_size: Optional[int] = None


EVIDENCE_LIMITS: Dict[str, EvidenceLimits] = {
    "stripe": EvidenceLimits(
        max_combined_file_size=5_000_000,
        allowed_content_types=("image/jpeg", "image/png", "application/pdf"),
        allowed_extensions=("jpeg", "jpg", "png", "pdf"),
        requires_png_conversion=True,
    ),
    "paypal": EvidenceLimits(
        max_combined_file_size=50_000_000,
        max_individual_file_size=10_000_000,
        allowed_content_types=("image/jpeg", "image/gif", "image/png", "application/pdf"),
        allowed_extensions=("jpeg", "jpg", "gif", "png", "pdf"),
        requires_png_conversion=False,
    ),
}
# nieznany procesor -> ostrzejszy profil
DEFAULT_EVIDENCE_LIMITS = EVIDENCE_LIMITS["stripe"]


class AttachmentSlot(Enum):
    RECEIPT_IMAGE = "receipt_image"
    REFUND_POLICY_IMAGE = "refund_policy_image"
    CANCELLATION_POLICY_IMAGE = "cancellation_policy_image"
    CUSTOMER_COMMUNICATION_FILE = "customer_communication_file"


@dataclass(frozen=True)
class EvidenceFile:
    filename: str
    content_type: str
    byte_size: int
    content: bytes = b""


@dataclass(frozen=True)
class DisputedPurchase:
    external_id: str
    charge_processor_id: str = "stripe"
    subscription: bool = False
    processor_refund_ids: Tuple[Optional[str], ...] = ()
    tracking_url: Optional[str] = None


_STRIPPED_FIELDS = (
    "customer_purchase_ip",
    "customer_email",
    "customer_name",
    "billing_address",
    "product_description",
    "refund_policy_disclosure",
    "cancellation_policy_disclosure",
    "shipping_address",
    "shipping_carrier",
    "shipping_tracking_number",
    "uncategorized_text",
    "cancellation_rebuttal",
    "refund_refusal_explanation",
    "reason_for_winning",
)


@dataclass
class DisputeEvidence:
    id: str
    disputed_purchases: List[DisputedPurchase] = field(default_factory=list)

    customer_purchase_ip: Optional[str] = None
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    billing_address: Optional[str] = None
    product_description: Optional[str] = None
    refund_policy_disclosure: Optional[str] = None
    cancellation_policy_disclosure: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_carrier: Optional[str] = None
    shipping_tracking_number: Optional[str] = None
    uncategorized_text: Optional[str] = None
    cancellation_rebuttal: Optional[str] = None
    refund_refusal_explanation: Optional[str] = None
    reason_for_winning: Optional[str] = None

    receipt_image: Optional[EvidenceFile] = None
    refund_policy_image: Optional[EvidenceFile] = None
    cancellation_policy_image: Optional[EvidenceFile] = None
    customer_communication_file: Optional[EvidenceFile] = None

    seller_contacted_at: Optional[datetime] = None
    resolution: str = RESOLUTION_UNKNOWN

    def __post_init__(self):
        for name in _STRIPPED_FIELDS:
            value = getattr(self, name)
            if isinstance(value, str):
                value = value.strip()
                setattr(self, name, value or None)

    # pliki
    def attachment(self, slot: AttachmentSlot) -> Optional[EvidenceFile]:
        return getattr(self, slot.value)

    def attach(self, slot: AttachmentSlot, file: Optional[EvidenceFile]):
        setattr(self, slot.value, file)

    @property
    def purchase(self) -> Optional[DisputedPurchase]:
        return self.disputed_purchases[0] if self.disputed_purchases else None

    @property
    def for_subscription_purchase(self) -> bool:
        return any(p.subscription for p in self.disputed_purchases)

    @property
    def policy_slot(self) -> AttachmentSlot:
        if self.for_subscription_purchase:
            return AttachmentSlot.CANCELLATION_POLICY_IMAGE
        return AttachmentSlot.REFUND_POLICY_IMAGE

    @property
    def policy_image(self) -> Optional[EvidenceFile]:
        return self.attachment(self.policy_slot)

    def set_policy_disclosure(self, value: Optional[str]):
        if self.for_subscription_purchase:
            self.cancellation_policy_disclosure = value
        else:
            self.refund_policy_disclosure = value

    def submittable_attachments(self) -> List[Tuple[AttachmentSlot, EvidenceFile]]:
        """Paragon, polityka (wg typu zakupu), komunikacja z klientem - w tej kolejnosci."""
        slots = (AttachmentSlot.RECEIPT_IMAGE, self.policy_slot, AttachmentSlot.CUSTOMER_COMMUNICATION_FILE)
        return [(slot, self.attachment(slot)) for slot in slots if self.attachment(slot) is not None]

    # limity procesora
    @property
    def processor_evidence_limits(self) -> EvidenceLimits:
        processor_id = self.purchase.charge_processor_id if self.purchase else None
        return EVIDENCE_LIMITS.get(processor_id, DEFAULT_EVIDENCE_LIMITS)

    @property
    def max_combined_file_size(self) -> int:
        return self.processor_evidence_limits.max_combined_file_size

    @property
    def allowed_file_content_types(self) -> Tuple[str, ...]:
        return self.processor_evidence_limits.allowed_content_types

    @property
    def allowed_file_extensions(self) -> Tuple[str, ...]:
        return self.processor_evidence_limits.allowed_extensions

    @property
    def requires_png_conversion(self) -> bool:
        return self.processor_evidence_limits.requires_png_conversion

    @staticmethod
    def _size(file: Optional[EvidenceFile]) -> int:
        return file.byte_size if file else 0

    @property
    def customer_communication_file_max_size(self) -> int:
        return self.max_combined_file_size - self._size(self.receipt_image) - self._size(self.policy_image)

    @property
    def policy_image_max_size(self) -> int:
        return (
            self.max_combined_file_size
            - MINIMUM_RECOMMENDED_CUSTOMER_COMMUNICATION_FILE_SIZE
            - self._size(self.receipt_image)
        )

    def hours_left_to_submit_evidence(self, now: Optional[datetime] = None) -> int:
        if self.seller_contacted_at is None:
            return 0
        now = now or datetime.now(timezone.utc)
        elapsed_hours = (now - self.seller_contacted_at).total_seconds() / 3600
        return round(SUBMIT_EVIDENCE_WINDOW_DURATION_IN_HOURS - elapsed_hours)

    # walidacja
    def errors(self) -> List[str]:
        errors = []
        if not self.disputed_purchases:
            errors.append("Dispute can't be blank.")

        for name in ("cancellation_rebuttal", "reason_for_winning", "refund_refusal_explanation"):
            value = getattr(self, name)
            if value and len(value) > MAX_TEXT_LENGTH:
                errors.append(f"{name.replace('_', ' ').capitalize()} is too long (maximum is {MAX_TEXT_LENGTH} characters).")

        communication = self.customer_communication_file
        if communication is not None:
            if communication.byte_size > self.customer_communication_file_max_size:
                errors.append("The file exceeds the maximum size allowed.")
            if communication.content_type not in self.allowed_file_content_types:
                errors.append("Invalid file type.")

        total = self._size(self.receipt_image) + self._size(self.policy_image) + self._size(communication)
        if total > self.max_combined_file_size:
            errors.append("Uploaded files exceed the maximum size allowed.")

        return errors

    @property
    def valid(self) -> bool:
        return not self.errors()

