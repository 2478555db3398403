"""
Catalog assistant flow - answers customer questions about a store's menu.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from .generation import GenerationFlow, LlmClient


class ProductInfo(BaseModel):
    name: str
    category: str
    description: Optional[str] = None
    price: float
    stock: int


class CatalogAssistantInput(BaseModel):
    user_question: str = Field(..., min_length=1, description="The customer's question.")
    product_context: List[ProductInfo] = Field(default_factory=list)
    store_name: str


class CatalogAssistantOutput(BaseModel):
    answer: str = Field(..., min_length=1, description="The answer in Bahasa Indonesia.")


CATALOG_PROMPT_TEMPLATE = """ROLE:
You are "Chika", a friendly and helpful virtual assistant who knows the menu of {{ store_name }}.
You may ONLY answer questions about the menu items listed below.

RULES:
1. Use only the product data provided. Never invent information.
2. Politely decline questions unrelated to the menu, e.g. "Sorry, I can only help with questions about the menu at {{ store_name }}."
3. Always answer in natural, friendly Bahasa Indonesia.
4. When asked for recommendations, suggest 2-3 items from the data and explain why.
5. If a requested product has stock 0, say it is currently unavailable.

PRODUCT KNOWLEDGE:
{{ product_context | tojson }}

CUSTOMER QUESTION:
"{{ user_question }}"

Return valid JSON with an "answer" field."""


def build_catalog_assistant(
    client: Optional[LlmClient] = None,
    model: Optional[str] = None
) -> GenerationFlow[CatalogAssistantInput, CatalogAssistantOutput]:
    return GenerationFlow(
        name="catalogAssistantFlow",
        template=CATALOG_PROMPT_TEMPLATE,
        input_model=CatalogAssistantInput,
        output_model=CatalogAssistantOutput,
        client=client,
        model=model,
    )


async def ask_catalog_assistant(payload, client: Optional[LlmClient] = None) -> CatalogAssistantOutput:
    return await build_catalog_assistant(client).run(payload)
