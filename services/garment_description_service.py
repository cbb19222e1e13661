"""Turn a user's garment description into a text-to-image prompt"""
import logging
import re

logger = logging.getLogger(__name__)

PROMPT_SUFFIX = (
    "isolated garment, flat lay product photo on a plain white background, "
    "front view, no person, no mannequin, professional fashion photography, "
    "high quality, detailed texture"
)

GARMENT_TYPE_HINTS = {
    "upper_body": "top",
    "lower_body": "bottoms",
    "dresses": "dress",
}


def clean_description(description: str) -> str:
    """Strip markdown and collapse whitespace from free-form description text"""
    # Remove markdown bold/italic
    description = re.sub(r'\*\*([^*]+)\*\*', r'\1', description)
    description = re.sub(r'\*([^*]+)\*', r'\1', description)
    # Remove markdown headers
    description = re.sub(r'^#+\s*', '', description, flags=re.MULTILINE)
    # Remove bullet points and dashes at start of lines
    description = re.sub(r'^[\-\*]\s*', '', description, flags=re.MULTILINE)
    return ' '.join(description.split())


def build_generation_prompt(description: str, garment_type: str) -> str:
    """Build the prompt used to synthesize a garment image from a description"""
    cleaned = clean_description(description).rstrip(".")
    hint = GARMENT_TYPE_HINTS.get(garment_type)
    subject = f"{cleaned} ({hint})" if hint else cleaned
    prompt = f"{subject}, {PROMPT_SUFFIX}"
    logger.info(f"Built garment generation prompt: {prompt}")
    return prompt
