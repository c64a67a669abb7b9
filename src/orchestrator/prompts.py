"""System prompt construction for the support agent."""

from shared.logging import get_logger
from shared.models import Resource
from mcp_client.client import MCPClient, MCPClientError

logger = get_logger(__name__)


DEFAULT_PREAMBLE = """You are a helpful customer support agent for a computer products company.

## Your Role
- Help customers find products, check orders, and place new orders
- Always be professional, friendly, and helpful
- Use the available tools to look up real-time data
- Ask for email and PIN to verify customers before accessing their order information

## Available Tools
You have access to the following tools to help customers:
- search_products: Find products by search query
- list_products: Browse product catalog with optional filters
- get_product: Get detailed product information by SKU
- verify_customer_pin: Verify customer identity with email and PIN (required before showing orders)
- get_customer: Get customer information by ID
- list_orders: View customer order history (requires verification first)
- get_order: Get detailed order information
- create_order: Place a new order for a customer

## Important Guidelines
- ALWAYS verify customer identity (email + PIN) before showing order information
- Provide specific product recommendations with SKU, price, and stock information
- Format prices with currency symbols (e.g., $299.99)
- Be transparent about stock levels
- If a customer wants to place an order, verify their identity first
"""


class SystemPromptBuilder:
    """
    Builds the system prompt from a fixed preamble and resource excerpts.

    Only the first ``max_resources`` resources are read, and each one
    contributes at most ``excerpt_chars`` characters. A resource that
    cannot be read is skipped so the prompt can still be built while
    the server is partially degraded.
    """

    def __init__(
        self,
        client: MCPClient,
        preamble: str = DEFAULT_PREAMBLE,
        max_resources: int = 3,
        excerpt_chars: int = 1000
    ) -> None:
        self.client = client
        self.preamble = preamble
        self.max_resources = max_resources
        self.excerpt_chars = excerpt_chars

    async def build(self, resources: list[Resource]) -> str:
        """
        Compose the system prompt.

        Args:
            resources: Resources in discovery order

        Returns:
            Preamble followed by an optional knowledge section
        """
        prompt = self.preamble

        if not resources:
            return prompt

        prompt += "\n## Product Knowledge\n"
        for resource in resources[:self.max_resources]:
            try:
                content = await self.client.read_resource(resource.uri)
            except MCPClientError as e:
                logger.warning(
                    "Failed to read resource",
                    uri=resource.uri,
                    error=str(e)
                )
                continue

            if content.text:
                prompt += f"\n### {resource.name}\n{content.text[:self.excerpt_chars]}\n"

        return prompt
