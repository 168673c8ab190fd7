"""Fixed user-facing texts for diagnosis turns."""

from __future__ import annotations

from typing import Dict

from models.outcome import OutcomeKind

DISCLAIMER = (
	"\n\n⚠️ **Medical Disclaimer**: V-SIDS can make mistakes. Please consult with a qualified "
	"dermatologist or healthcare provider for proper diagnosis and treatment."
)

UPLOAD_REQUIRED = "Please upload an image first for skin analysis."

UNEXPECTED_FORMAT = (
	"I was able to analyze your image, but the response format was unexpected. "
	"Please try again or consult with a healthcare professional."
)

TECHNICAL_DIFFICULTIES = (
	"I apologize, but the image analysis service is currently experiencing technical difficulties. "
	"Please try again in a few moments, or consult with a dermatologist for immediate medical advice."
)

OUTCOME_MESSAGES: Dict[OutcomeKind, str] = {
	OutcomeKind.SERVICE_UNAVAILABLE: (
		"The analysis service is temporarily unavailable. Please try again in a few minutes."
	),
	OutcomeKind.RATE_LIMITED: "Too many requests. Please wait a moment before trying again.",
	OutcomeKind.BAD_REQUEST: (
		"The analysis service could not read this request. "
		"Please check your image and question, then try again."
	),
	OutcomeKind.TIMEOUT: (
		"The request timed out. Please try again with a smaller image or check your internet connection."
	),
	OutcomeKind.MALFORMED: UNEXPECTED_FORMAT,
	OutcomeKind.NETWORK_FAILURE: (
		"I apologize, but I'm currently unable to analyze your image due to a network issue. "
		"Please check your internet connection and try again."
	),
}


def no_image_response(question: str) -> str:
	"""Return the canned educational reply used when a question arrives without an image."""
	return (
		f'I\'d be happy to help with your skin concern: "{question}"\n\n'
		"However, for the most accurate analysis, I recommend uploading a clear image of the area "
		"you're concerned about. This will allow me to provide more specific and helpful guidance.\n\n"
		"**General Skin Health Tips:**\n"
		"- Keep the area clean and dry\n"
		"- Avoid harsh soaps or irritating products\n"
		"- Protect from sun exposure with appropriate sunscreen\n"
		"- Monitor any changes in size, color, or texture\n\n"
		"**When to Seek Medical Attention:**\n"
		"- Any rapidly changing or growing lesions\n"
		"- Persistent itching, bleeding, or pain\n"
		"- New growths or moles that appear different from others\n"
		"- Any concerning changes in existing moles or spots\n\n"
		"Please upload an image for a more detailed analysis, and remember to consult with a "
		"dermatologist for professional medical evaluation."
	)
