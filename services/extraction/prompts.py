"""Instruction templates for the model-based extraction phase."""

import json
from typing import Any

from services.extraction.schema import Document

EXTRACTION_PROMPT = """Analyze the following government procurement email and extract
structured data.
Pay careful attention to:

1. Contract information: vehicle type, RFQ/RFP numbers, agencies
2. Requirements: technical specs, compliance needs, certifications required
3. Business information: vendor requirements, small business set-asides
4. Submission details: due dates, contact information, evaluation criteria
5. Documents: referenced attachments, SOWs, pricing templates

Email:
---
Subject: {subject}
From: {sender}
To: {recipient}
Content: {body}
---

Extract the information as a JSON object with these properties. If a field cannot be
determined from the email, set it to null or an empty array:

{schema}"""

DIALECT_INSTRUCTIONS: dict[str, str] = {
    "SEWP": """SPECIALIZED INSTRUCTIONS FOR SEWP PROCUREMENT:
- Focus on SEWP V contract vehicle identification
- Extract machine-readable sections with key-value pairs
- Identify brand restrictions (e.g., "Nutanix only")
- Look for business certifications: HUBZone, SDVOSB, 8(a), WOSB
- Identify compliance requirements: TAA, Buy American Act, Berry Amendment
- Extract RFQ numbers from subject lines (format: RFQ #12345)
- Parse attachment references for SOWs and pricing templates""",
    "NASA": """SPECIALIZED INSTRUCTIONS FOR NASA PROCUREMENT:
- Identify NASA centers/facilities (JPL, Goddard, Johnson, Kennedy, etc.)
- Extract space-qualified component requirements
- Look for security clearance requirements (FIPS 140-2, ITAR)
- Identify mission-critical performance standards
- Extract NASA-specific procurement numbers (NASA-YYYY-XXX format)
- Focus on technical specifications for space/aviation applications
- Identify contract vehicles (SEWP, GSA, CIO-SP3, NASA Direct)""",
    "GSA": """SPECIALIZED INSTRUCTIONS FOR GSA SCHEDULE PROCUREMENT:
- Extract eBuy RFQ identifiers (format: RFQ1234567)
- List every Special Item Number (SIN) referenced
- Capture schedule contract numbers (GS-35F-XXXXX or 47Q... formats)
- Note whether the request is a BPA call or an open MAS order
- Identify the ordering agency and the quote close date
- Look for small business set-asides and TAA compliance requirements""",
    "GENERIC": """SPECIALIZED INSTRUCTIONS FOR GENERAL GOVERNMENT PROCUREMENT:
- Identify government agency from email domain or content
- Determine procurement type (RFP, RFQ, RFI, IFB, BAA)
- Extract solicitation numbers in various formats
- Look for general small business set-aside requirements
- Identify federal contracting requirements and clauses
- Extract contact information for contracting officers
- Focus on evaluation criteria and submission requirements""",
}


def build_extraction_prompt(document: Document, dialect: str, schema: dict[str, Any]) -> str:
    """Render the extraction prompt for a document.

    Args:
        document: Inbound document
        dialect: Extractor dialect tag, selects the specialized instructions
        schema: JSON schema of the expected object

    Returns:
        Prompt text
    """
    prompt = EXTRACTION_PROMPT.format(
        subject=document.subject or "No subject",
        sender=document.sender or "Unknown sender",
        recipient=document.recipient or "Unknown recipient",
        body=document.body or "No content available",
        schema=json.dumps(schema.get("properties", {}), indent=2),
    )

    instructions = DIALECT_INSTRUCTIONS.get(dialect)
    if instructions:
        prompt = f"{instructions}\n\n{prompt}"
    return prompt
