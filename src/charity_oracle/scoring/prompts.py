"""Rubric prompts for the text and image collaborators."""

from __future__ import annotations

TEXT_SYSTEM_PROMPT = "You are a charity verification AI. Respond only with valid JSON."

TEXT_PROMPT_TEMPLATE = """You are an AI charity verification expert. Analyze the following charity registration and provide a legitimacy assessment.

Charity Name: {name}
Description: {description}
Wallet Address: {wallet}
Supporting Documents: {evidence_ref}

Evaluate based on:
1. Name credibility (does it sound like a real charity?)
2. Description quality (detailed, specific, professional?)
3. Red flags (scam indicators, vague language, unrealistic claims)
4. Document provision (supporting document reference provided or not)

Provide your response in JSON format:
{{
  "baseScore": <number 0-100>,
  "reasoning": "<brief explanation>",
  "flags": ["<any red flags found>"]
}}

Be strict but fair. A score of 60+ means likely legitimate."""

IMAGE_PROMPT_TEMPLATE = """You are an AI image verification expert for a charity platform. Analyze the following images uploaded for this charity campaign:

Charity Name: {name}
Stated Purpose: {description}

Your task is to verify:
1. Relevance: Do the images relate to the charity's stated purpose?
2. Authenticity: Do the images appear genuine (not stock photos, AI-generated, or misleading)?
3. Appropriateness: Are the images professional and suitable for a charity campaign?
4. Quality: Are the images clear, well-composed, and trustworthy?
5. Consistency: Do all images support the same charitable cause?

Look for real photos of charity work, beneficiaries, facilities or activities that directly
support the stated mission. Penalise stock photos, AI-generated or misleading edits, images
unrelated to the cause, and low-quality or suspicious content.

Provide your response in JSON format:
{{
  "imageScore": <number 0-100>,
  "valid": <boolean>,
  "reasoning": "<brief explanation of what you see and whether it matches the cause>",
  "concerns": ["<any concerns or red flags>"]
}}

A score of 70+ means images strongly support the charity's legitimacy."""


def build_text_prompt(name: str, description: str, wallet: str, evidence_ref: str) -> str:
    return TEXT_PROMPT_TEMPLATE.format(
        name=name,
        description=description,
        wallet=wallet,
        evidence_ref=evidence_ref or "None provided",
    )


def build_image_prompt(name: str, description: str) -> str:
    return IMAGE_PROMPT_TEMPLATE.format(name=name, description=description)
