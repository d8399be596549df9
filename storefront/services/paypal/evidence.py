# storefront/services/paypal/evidence.py
"""
Budowanie dowodow dla PayPal /v1/customer/disputes/{id}/provide-evidence.

Kazdy rodzaj dowodu idzie jako osobny element tablicy `evidences`
z wlasnym evidence_type (PROOF_OF_FULFILLMENT, PROOF_OF_RECEIPT_COPY, ...).
"""
from typing import List, Optional

from storefront.domain.dispute_evidence import AttachmentSlot, DisputeEvidence, EvidenceFile
from storefront.services.paypal_carrier_mapper import PaypalCarrierMapper
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PAYPAL_CARRIER_OTHER = "OTHER"
PAYPAL_CARRIER_UNKNOWN = "Unknown"
CARRIER_NAME_MAX_LENGTH = 2000
NOTE_MAX_LENGTH = 2000

EVIDENCE_TYPE_PROOF_OF_FULFILLMENT = "PROOF_OF_FULFILLMENT"
EVIDENCE_TYPE_PROOF_OF_REFUND = "PROOF_OF_REFUND"
EVIDENCE_TYPE_OTHER = "OTHER"

SLOT_EVIDENCE_TYPES = {
    AttachmentSlot.RECEIPT_IMAGE: "PROOF_OF_RECEIPT_COPY",
    AttachmentSlot.REFUND_POLICY_IMAGE: "RETURN_POLICY",
    # polityka anulowania subskrypcji to tez rodzaj polityki zwrotow
    AttachmentSlot.CANCELLATION_POLICY_IMAGE: "RETURN_POLICY",
    AttachmentSlot.CUSTOMER_COMMUNICATION_FILE: EVIDENCE_TYPE_PROOF_OF_FULFILLMENT,
}

NOTE_LABELS = (
    ("product_description", "Product"),
    ("customer_name", "Customer"),
    ("customer_email", "Email"),
    ("customer_purchase_ip", "IP"),
    ("billing_address", "Billing address"),
    ("shipping_address", "Shipping address"),
    ("reason_for_winning", "Reason for winning"),
)


def truncate(text: str, limit: int, omission: str = "...") -> str:
    if len(text) <= limit:
        return text
    return text[: limit - len(omission)] + omission


def _present(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip() or None


class PaypalEvidenceBuilder:
    def __init__(self, carrier_mapper: Optional[PaypalCarrierMapper] = None):
        self.carrier_mapper = carrier_mapper or PaypalCarrierMapper()

    def build_evidence_items(self, evidence: DisputeEvidence) -> List[dict]:
        items = []

        fulfillment = self.build_fulfillment_evidence(evidence)
        if fulfillment:
            items.append(fulfillment)

        items.extend(self.build_document_evidence_items(evidence))

        refund = self.build_refund_evidence(evidence)
        if refund:
            items.append(refund)

        notes = self.build_notes_evidence(evidence)
        if notes:
            items.append(notes)

        return items

    def build_fulfillment_evidence(self, evidence: DisputeEvidence) -> Optional[dict]:
        item = {"evidence_type": EVIDENCE_TYPE_PROOF_OF_FULFILLMENT}

        if evidence.shipping_tracking_number:
            item["evidence_info"] = {"tracking_info": [self.build_tracking_info(evidence)]}

        communication = evidence.customer_communication_file
        if communication is not None:
            item["documents"] = [{"name": communication.filename}]

        if "evidence_info" in item or "documents" in item:
            return item
        return None

    def build_document_evidence_items(self, evidence: DisputeEvidence) -> List[dict]:
        items = []
        for slot in (AttachmentSlot.RECEIPT_IMAGE, evidence.policy_slot):
            file = evidence.attachment(slot)
            if file is None:
                continue
            items.append({"evidence_type": SLOT_EVIDENCE_TYPES[slot], "documents": [{"name": file.filename}]})
        return items

    def build_refund_evidence(self, evidence: DisputeEvidence) -> Optional[dict]:
        refund_ids = []
        for purchase in evidence.disputed_purchases:
            for refund_id in purchase.processor_refund_ids:
                if refund_id and refund_id not in refund_ids:
                    refund_ids.append(refund_id)

        if not refund_ids:
            return None
        return {
            "evidence_type": EVIDENCE_TYPE_PROOF_OF_REFUND,
            "evidence_info": {"refund_ids": refund_ids},
        }

    def build_notes_evidence(self, evidence: DisputeEvidence) -> Optional[dict]:
        notes = self.build_notes(evidence)
        if not notes:
            return None
        return {"evidence_type": EVIDENCE_TYPE_OTHER, "notes": notes}

    def build_notes(self, evidence: DisputeEvidence) -> str:
        # pola moga byc ustawione po konstrukcji, wiec strip jeszcze raz
        parts = []
        for name, label in NOTE_LABELS:
            value = _present(getattr(evidence, name))
            if value:
                parts.append(f"{label}: {value}")
        uncategorized = _present(evidence.uncategorized_text)
        if uncategorized:
            parts.append(uncategorized)
        return truncate("\n\n".join(parts), NOTE_MAX_LENGTH)

    def build_tracking_info(self, evidence: DisputeEvidence) -> dict:
        tracking_info = {}

        if evidence.shipping_carrier:
            carrier_code = self.carrier_mapper.lookup(evidence.shipping_carrier)
            if carrier_code:
                tracking_info["carrier_name"] = carrier_code
            else:
                tracking_info["carrier_name"] = PAYPAL_CARRIER_OTHER
                tracking_info["carrier_name_other"] = truncate(evidence.shipping_carrier, CARRIER_NAME_MAX_LENGTH)
        else:
            tracking_info["carrier_name"] = PAYPAL_CARRIER_OTHER
            tracking_info["carrier_name_other"] = PAYPAL_CARRIER_UNKNOWN

        tracking_info["tracking_number"] = evidence.shipping_tracking_number

        purchase = evidence.purchase
        if purchase is not None and purchase.tracking_url:
            tracking_info["tracking_url"] = purchase.tracking_url

        return tracking_info

    def collect_attached_files(self, evidence: DisputeEvidence) -> List[EvidenceFile]:
        """Pliki do uploadu. Zly typ, za duzy plik albo przekroczony limit laczny - pomijamy i logujemy."""
        limits = evidence.processor_evidence_limits
        valid = []
        total_size = 0

        for _slot, file in evidence.submittable_attachments():
            if file.content_type not in limits.allowed_content_types:
                self._log_skipped_file(evidence, file, f"unsupported content type: {file.content_type}")
                continue

            max_size = limits.max_individual_file_size
            if max_size is not None and file.byte_size > max_size:
                self._log_skipped_file(evidence, file, f"exceeds individual size limit: {file.byte_size} bytes")
                continue

            if total_size + file.byte_size > limits.max_combined_file_size:
                self._log_skipped_file(
                    evidence, file, f"would exceed total upload limit of {limits.max_combined_file_size} bytes"
                )
                continue

            valid.append(file)
            total_size += file.byte_size

        return valid

    @staticmethod
    def _log_skipped_file(evidence: DisputeEvidence, file: EvidenceFile, reason: str):
        logger.warning(
            f"PayPal provide-evidence: Skipped file '{file.filename}' for dispute evidence {evidence.id}: {reason}"
        )
