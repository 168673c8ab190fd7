"""HTTP client for the remote image analysis service."""

from __future__ import annotations

import asyncio
import logging

import httpx

LOGGER = logging.getLogger(__name__)

DEFAULT_UPSTREAM_URL = "https://llava-rag-api.vercel.app/rag-query"
DEFAULT_TIMEOUT_SECONDS = 45.0
USER_AGENT = "V-SIDS/1.0"


class UpstreamAnalysisClient:
	"""Forward one question plus image to the analysis service."""

	def __init__(
		self,
		http_client: httpx.AsyncClient,
		url: str = DEFAULT_UPSTREAM_URL,
		timeout: float = DEFAULT_TIMEOUT_SECONDS,
	) -> None:
		if http_client is None:
			raise ValueError("httpx.AsyncClient is required.")
		self.http_client = http_client
		self.url = url
		self.timeout = timeout

	async def analyze(self, question: str, image_b64: str) -> httpx.Response:
		"""POST the question and image.

		Transport errors propagate as httpx exceptions. The whole exchange,
		body included, is bounded by `timeout`; running over raises
		asyncio.TimeoutError.
		"""
		response = await asyncio.wait_for(
			self.http_client.post(
				self.url,
				json={"image_b64": image_b64, "question": question},
				headers={"Accept": "application/json", "User-Agent": USER_AGENT},
				timeout=self.timeout,
			),
			self.timeout,
		)
		LOGGER.info("Analysis service responded with status %s", response.status_code)
		return response
