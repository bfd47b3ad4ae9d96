"""
EDI Claim Status Exchange.

Logical content of the X12 claim status transactions:
- 276: Claim Status Inquiry (outbound)
- 277: Claim Status Response (inbound)
"""

from src.services.edi.x12_276_builder import (
    AutoInquiryResult,
    InquiryClaim,
    InquiryPatient,
    InquiryPayer,
    InquiryProvider,
    PayerGroup,
    PayerInquiry,
    StatusInquiry,
    StatusInquiryBuilder,
)
from src.services.edi.x12_277_translator import (
    STATUS_CODE_DESCRIPTIONS,
    STATUS_CODE_MAPPING,
    ClaimStatusItem,
    ClaimStatusResponse,
    ItemResult,
    Response277Result,
    StatusCodeTranslator,
    TranslatedStatus,
    X277StatusCode,
    describe_status_code,
)

__all__ = [
    # 276
    "AutoInquiryResult",
    "InquiryClaim",
    "InquiryPatient",
    "InquiryPayer",
    "InquiryProvider",
    "PayerGroup",
    "PayerInquiry",
    "StatusInquiry",
    "StatusInquiryBuilder",
    # 277
    "STATUS_CODE_DESCRIPTIONS",
    "STATUS_CODE_MAPPING",
    "ClaimStatusItem",
    "ClaimStatusResponse",
    "ItemResult",
    "Response277Result",
    "StatusCodeTranslator",
    "TranslatedStatus",
    "X277StatusCode",
    "describe_status_code",
]
