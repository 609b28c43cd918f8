"""
Prompt templates for the AI features.

Kupado is a Slovak marketplace: instructions are in English, but every
template asks for user-facing text in Slovak. The output JSON shape is not
part of these templates; the provider client appends it.
"""
import json
from typing import Any, Dict, List


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, indent=2)


def ad_description(product_info: Dict[str, Any]) -> str:
    return f"""
Write a professional, persuasive listing description for a Slovak online marketplace.

Product information:
{_dump(product_info)}

Requirements:
- 100-300 words, written in Slovak
- Highlight the key features and benefits
- Be specific and objective
- End with a call to action
- No emojis, headings or extra notes
"""


def ad_titles(product_info: Dict[str, Any]) -> str:
    return f"""
Create catchy, SEO-friendly listing titles in Slovak.

Product information:
{_dump(product_info)}

Requirements:
- At most 50 characters each
- Include brand and model when known
- Be specific
- Produce exactly 3 variants
"""


def ad_tags(ad_data: Dict[str, Any]) -> str:
    return f"""
Generate tags and keywords for this listing on a Slovak marketplace.

Title: {ad_data.get("title", "")}
Description: {ad_data.get("description", "")}
Category: {ad_data.get("category", "")}
Price: {ad_data.get("price", "")} EUR

Produce:
1. 5-10 main tags: short, precise product labels
2. 5-8 category keywords specific to the category
3. 10-15 search keywords people actually type when searching
4. A confidence score between 0 and 1 for each main tag

Rules:
- Slovak language, tags without diacritics
- Include synonyms and alternative names
- Include brand and model when present
"""


def product_comparison(products: List[Dict[str, Any]]) -> str:
    return f"""
Compare the following products and write a detailed analysis in Slovak.

Products:
{_dump(products)}

Cover:
1. Main differences in specifications
2. Price to value ratio
3. Condition and usage history
4. Which product is the best choice and why (bestChoice is the 0-based index in the list above)
5. Who each product suits
"""


def price_recommendation(product_info: Dict[str, Any], similar_products: List[Dict[str, Any]]) -> str:
    return f"""
Recommend the optimal asking price for this product. Write the analysis in Slovak.

Product:
{_dump(product_info)}

Similar products on the market:
{_dump(similar_products)}

Consider:
1. Prices of the similar products
2. Condition and age of the product
3. Market trends
4. The price that sells quickly without underpricing

competitiveness must be one of: low, medium, high.
"""


def fraud_check(ad_data: Dict[str, Any]) -> str:
    return f"""
Analyze this listing for suspicious patterns and potential fraud.

Listing data:
{_dump(ad_data)}

Assess:
1. Risk score from 0 to 100 (100 = highest risk)
2. Risk level: low, medium, high or critical
3. Detected suspicious patterns
4. Concrete suspicious indicators
5. Reasoning for the assessment
6. Recommendations for the moderator

Watch for:
- Unrealistically low prices
- Poor grammar or typos
- Missing details
- Requests for payment outside the platform
- Suspicious contact details
- Mismatch between description and photos
- Urgent pressure to act immediately

Write all text fields in Slovak.
"""


def image_analysis() -> str:
    return """
Analyze this product photo for an online marketplace listing.

Provide:
1. A short description of what is in the photo (at most 50 words)
2. The product category
3. The main product characteristics
4. Search keywords
5. Scores from 0 to 100 for overall quality, resolution, lighting and composition
6. Objects detected in the photo
7. Concrete suggestions to improve the photo
8. Whether the photo is appropriate for a public marketplace

Write all text fields in Slovak.
"""


def alternatives(product: Dict[str, Any], category: str) -> str:
    return f"""
Based on this product, suggest 3-5 alternative products. Write in Slovak.

Product:
{_dump(product)}

Category: {category}

Suggest similar products from other brands or models that could interest the buyer.
For each alternative give the brand and model, the main differences from the original,
why it is interesting, and an approximate price range.
"""


def quality_evaluation(ad_data: Dict[str, Any]) -> str:
    return f"""
Evaluate the quality of this listing on a scale of 0-100 points.

Listing data:
{_dump(ad_data)}

Criteria:
1. Description quality (0-30 points): grammar, length, completeness
2. Photo quality (0-25 points): number and presence of images
3. Filled-in specifications (0-25 points): completeness of technical details
4. Price competitiveness (0-20 points): how reasonable the price is

totalScore is the sum of the four criteria. Write suggestions, strengths and weaknesses in Slovak.
"""


def search_analysis(query: str) -> str:
    return f"""
Analyze this search query from a Slovak marketplace and prepare it for search.

Query: "{query}"

Do the following:
1. Normalize the query (processedQuery)
2. Extract filters from natural language: category, price range (priceMin/priceMax),
   location, condition (new/used), brand
3. Suggest alternative search terms (synonyms)
4. Expand semantically to related concepts
5. Detect the user's intent: buy, sell, compare or research

Examples:
- "cervene auto do 10000 eur bratislava": colour, vehicle type, maximum price, location
- "lacny iphone": brand, below-average price
- "predaj mobil samsung": intent sell, category, brand

Omit filters that the query does not mention.
"""


CHAT_CONTEXTS = {
    "general": """
You are a helpful AI assistant for Kupado.sk, a Slovak online marketplace.
You help users with:
- Buying and selling products
- Navigating the platform
- Tips for better listings
- General questions
{search_note}
Always answer in Slovak; be friendly and helpful.
""",
    "ad_help": """
You are an AI expert on writing listings for Kupado.sk.
You help users:
- Write better descriptions
- Choose the right category
- Set the optimal price
- Create attractive titles
Give concrete, practical advice. Always answer in Slovak.
""",
    "buying_guide": """
You are an AI shopping advisor for Kupado.sk.
You help buyers:
- Choose the right product
- Compare the options
- Spot suspicious listings
- Negotiate the price
{search_note}
Be objective and protect the buyer. Always answer in Slovak.
""",
    "support": """
You are an AI support agent for Kupado.sk.
You help with:
- Technical problems
- Questions about features
- Problems with listings
- Explaining the platform rules
Be patient and give clear instructions. Always answer in Slovak.
""",
}

CHAT_SEARCH_NOTE = (
    "When the user is looking for products, tell them you found relevant listings "
    "and that they are shown below your answer."
)


def chat_system(context_type: str, has_search_results: bool = False) -> str:
    """System prompt for a chat context; unknown contexts fall back to ``general``."""
    template = CHAT_CONTEXTS.get(context_type, CHAT_CONTEXTS["general"])
    return template.format(search_note=CHAT_SEARCH_NOTE if has_search_results else "").strip()


def chat_message(message: str, results_count: int) -> str:
    if not results_count:
        return message
    return f"{message}\n\n(I found {results_count} listings that may interest the user; they are shown with the answer.)"
