"""
Product description generator flow.
"""

from typing import List, Optional

from pydantic import BaseModel, Field

from .generation import GenerationFlow, LlmClient


class DescriptionGeneratorInput(BaseModel):
    product_name: str = Field(..., description="The name of the product.")
    category: str = Field(..., description='The product category (e.g. "Kopi", "Dessert").')
    top_selling_products: List[str] = Field(
        default_factory=list,
        description="Other top-selling products in the store, for context."
    )


class DescriptionGeneratorOutput(BaseModel):
    description: str = Field(
        ...,
        min_length=1,
        description="A concise, attractive product description in Indonesian (2-3 sentences)."
    )


DESCRIPTION_PROMPT_TEMPLATE = """You are an expert copywriter for the "Chika" brand.
Write a short (2-3 sentences), attractive and persuasive product description for the item below.

Write in Bahasa Indonesia.

Product details:
- Product name: {{ product_name }}
- Category: {{ category }}
{% if top_selling_products %}
For context, the other top-selling products in this store are: {{ top_selling_products | join(", ") }}.
{% endif %}
Focus on the features, benefits and uniqueness of the product.

Generate the description for {{ product_name }} and return it as valid JSON with a "description" field."""


def build_description_generator(
    client: Optional[LlmClient] = None,
    model: Optional[str] = None
) -> GenerationFlow[DescriptionGeneratorInput, DescriptionGeneratorOutput]:
    return GenerationFlow(
        name="descriptionGeneratorFlow",
        template=DESCRIPTION_PROMPT_TEMPLATE,
        input_model=DescriptionGeneratorInput,
        output_model=DescriptionGeneratorOutput,
        client=client,
        model=model,
    )


async def generate_description(payload, client: Optional[LlmClient] = None) -> DescriptionGeneratorOutput:
    return await build_description_generator(client).run(payload)
