"""Prompt builders for the writing, analysis and research endpoints."""

from __future__ import annotations

import json
from typing import List

import localization

ARTICLE_FORMAT_RULES = """Format the content with HTML tags:
- Use <p> tags for paragraphs
- Use <ul> and <li> tags for lists
- Use <strong> tags for emphasis"""

HTML_OUTPUT_RULES = """Use proper HTML tags:
- <h2> for main sections
- <h3> for subsections
- <p> for paragraphs
- <ul> and <li> for bullet points
- <strong> for emphasis"""


# ------------------------------------------------------------------------------
# Article generation
# ------------------------------------------------------------------------------

def article_system_prompt(language: str, target_country: str, company_info: dict | None) -> str:
    return (
        "You are a professional content writer who creates high-quality, SEO-optimized articles "
        "with proper HTML formatting.\n"
        f"{localization.get_language_instruction(language)}\n"
        f"{localization.get_country_context(target_country)}\n"
        "You are writing the text for a company website. You have the following information:\n"
        f"{json.dumps(company_info or {})}\n"
        "Write one section at a time, maintaining context with previous content. "
        "Do not include titles or headings - these will be added separately."
    )


def article_section_prompt(keyword: str, section: str, related_keywords: List[str], previous_content: str,
                           is_introduction: bool, tone: dict | None) -> str:
    parts = []
    if previous_content:
        parts.append(f"Previous content for context (do not repeat this):\n{previous_content}\n")
    if is_introduction:
        parts.append(
            f'Write an engaging introduction section (without title or heading) for an article about "{keyword}".'
        )
    else:
        parts.append(
            f'Write the content for the section "{section}" (without repeating the section title) '
            f'for the article about "{keyword}".'
        )
    parts.append(f"Include these related keywords naturally where relevant: {', '.join(related_keywords)}")
    tone = tone or {}
    if tone.get("tone"):
        parts.append(
            "Match this writing style:\n"
            f"- Overall Tone: {tone.get('tone', '')}\n"
            f"- Writing Style: {tone.get('style', '')}\n"
            f"- Voice: {tone.get('voice', '')}\n"
            f"- Language Patterns: {tone.get('language', '')}\n"
            f"- Engagement Approach: {tone.get('engagement', '')}"
        )
    parts.append(ARTICLE_FORMAT_RULES)
    parts.append(
        "Guidelines:\n"
        "1. Write in the specified tone and style\n"
        "2. Include specific examples and explanations\n"
        "3. Maintain a natural flow with the previous content\n"
        "4. Keep SEO in mind while ensuring readability\n"
        "5. Write approximately 200-300 words for this section\n"
        "6. DO NOT include the title or section heading - these will be added automatically"
    )
    return "\n".join(parts)


def title_prompt(keyword: str, language: str, target_country: str, content_type: str,
                 business_name: str | None) -> str:
    business = f' The content is published by "{business_name}"; mention the brand if it reads naturally.' if business_name else ""
    return (
        f'Create one SEO-optimized title for a {content_type or "blog post"} about "{keyword}".{business}\n'
        f"{localization.get_language_instruction(language)}\n"
        f"{localization.get_country_context(target_country)}\n"
        "Keep it under 60 characters, include the keyword, and return only the title without quotes."
    )


def outline_system_prompt(language: str, target_country: str, target_word_count: int, content_type: str) -> str:
    section_words = round(target_word_count / 5)
    base = (
        f"{localization.get_outline_language_instruction(language)}\n"
        f"{localization.get_country_context(target_country)}\n"
        f"Target Word Count: {target_word_count} words\n"
        f"Average Words per Section: {section_words} words\n"
    )
    if content_type == "collection":
        return (
            "You are an expert e-commerce SEO strategist who outlines product collection pages.\n"
            + base
            + "Create an outline for a collection description that helps shoppers choose between products, "
            "answers buying questions and targets category keywords.\n"
            "Formatting Requirements:\n"
            "- Use H2 for main sections and H3 for subsections\n"
            "- Follow this format exactly:\n"
            "  H2: Main Section\n"
            "  H3: Subsection\n"
            "- Return only the outline lines, no commentary."
        )
    return (
        "You are an expert SEO content strategist who creates highly optimized, user-focused content outlines.\n"
        + base
        + "Create an SEO-optimized outline that outperforms the competitor content, addresses search intent "
        "comprehensively and places keywords strategically in headers.\n"
        "SEO Optimization Guidelines:\n"
        "- H2 headers should include primary or secondary keywords when natural\n"
        "- H3 headers should target long-tail variations and related questions\n"
        "- Include sections for featured snippet and \"People Also Ask\" opportunities\n"
        "Formatting Requirements:\n"
        "- Follow this format exactly:\n"
        "  H2: Main Section (with keyword)\n"
        "  H3: Subsection (with related term)\n"
        "- Start with an introduction section and end with a conclusion section\n"
        "- Return only the outline lines, no commentary."
    )


def outline_user_prompt(keyword: str, title: str, competitor_analysis: str) -> str:
    competitors = competitor_analysis or "No competitor data available."
    return (
        f"Primary Keyword: {keyword}\n"
        f"Title: {title}\n\n"
        f"Competitor Analysis:\n{competitors}"
    )


# ------------------------------------------------------------------------------
# Analysis
# ------------------------------------------------------------------------------

TONE_ANALYSIS_SYSTEM = (
    "You are an expert at analyzing writing style and tone of voice. Provide a comprehensive analysis of "
    "the text's writing characteristics, including specific examples from the text when possible."
)

TONE_SUMMARY_SYSTEM = (
    "You are a writing style analyzer. Based on the detailed analysis provided, create a structured "
    "summary with key points for each category. Be concise and specific."
)

TONE_SECTIONS = ["tone", "style", "voice", "language", "engagement"]
AUDIENCE_SECTIONS = ["demographics", "psychographics", "behavior", "geography"]


def tone_analysis_prompt(sample_text: str) -> str:
    return (
        f'Analyze this text in detail: "{sample_text}"\n\n'
        "Please provide a comprehensive analysis with these components:\n"
        "1. Overall Tone: emotional quality, attitude towards the subject, level of formality\n"
        "2. Writing Style: sentence structure, paragraph organization, technical vs. conversational balance\n"
        "3. Voice Characteristics: perspective, personality, authority, relationship with reader\n"
        "4. Language Patterns: common words and phrases, jargon, transitional phrases\n"
        "5. Engagement Elements: attention techniques, persuasion, call-to-action style"
    )


def structured_summary_prompt(analysis: str, sections: List[str]) -> str:
    layout = "\n".join(f"{name.upper()}:\n• [key point]\n• [key point]\n• [key point]" for name in sections)
    return (
        "Based on this detailed analysis, provide a structured summary with bullet points for each "
        f"category. Be specific and concise:\n\n{analysis}\n\n"
        "Format your response EXACTLY as follows (keep the exact labels and use • for bullet points):\n\n"
        f"{layout}"
    )


AUDIENCE_ANALYSIS_SYSTEM = (
    "You are a marketing strategist who profiles target audiences from website and marketing copy."
)

AUDIENCE_SUMMARY_SYSTEM = (
    "You are a target audience analyzer. Based on the detailed analysis provided, create a structured "
    "summary with key points for each category. Be concise and specific."
)


def audience_analysis_prompt(text: str) -> str:
    return (
        f'Analyze the target audience of this text in detail: "{text}"\n\n'
        "Cover demographics (age, gender, income, education, occupation), psychographics (values, "
        "interests, lifestyle, pain points), behavior (buying habits, decision factors, channels) and "
        "geography (regions, urban or rural, cultural context)."
    )


def parse_bullet_sections(summary: str, sections: List[str]) -> dict:
    """Group '•' bullet lines under the most recent 'HEADER:' line."""
    parsed = {name: [] for name in sections}
    current = ""
    for raw_line in summary.splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.endswith(":"):
            current = line[:-1].strip().lower()
        elif line.startswith("•") and current in parsed:
            parsed[current].append(line[1:].strip())
    return {name: "\n".join(points) for name, points in parsed.items()}


WEBSITE_SUMMARY_SYSTEM = (
    "You are a business analyst. Summarize what the company does, who it serves and what makes it "
    "different in one concise paragraph."
)

SELECT_KEY_URLS_SYSTEM = (
    "You are an AI assistant specialized in business analysis. Your task is to identify the most "
    "strategically important URLs from a given list that would help someone quickly understand the core "
    "aspects of a company's business, its products, services, target audience, and overall mission.\n"
    'The output MUST be a JSON object with a single key "selectedUrls", and its value must be an array of '
    'strings. For example: {"selectedUrls": ["https://example.com/about", "https://example.com/products"]}.'
)


def select_key_urls_prompt(urls: List[str]) -> str:
    return (
        "From the following list of website URLs, please select up to 50 URLs (fewer if only a few are "
        "truly key) that are most critical for understanding the company's business. Prioritize about, "
        "product, service, pricing and contact pages; skip legal, login and tag archive pages.\n\n"
        + "\n".join(urls)
    )


BUSINESS_ANALYSIS_SYSTEM = (
    "You are an expert business analyst. Using only the website content provided, write a structured "
    "business profile covering: company overview, products and services, target audience, unique value "
    "proposition, brand voice, and key differentiators. Use markdown headings."
)

CONTENT_STRUCTURE_SYSTEM = (
    "You are an expert content strategist. Using the website content provided, describe how the site "
    "writes: typical page structure, heading patterns, paragraph length, use of lists, calls to action, "
    "tone and style conventions. Produce guidelines a writer could follow to match the site. Use markdown."
)


def crawled_content_prompt(combined: str) -> str:
    return f"Here is the content extracted from the company's key pages:\n\n{combined}"


EXPAND_SYSTEM = "You are a skilled writer. Expand the given text with more detail, examples and explanation while keeping its tone and language."
IMPROVE_SYSTEM = "You are an expert editor. Improve the clarity, flow and grammar of the given text while keeping its meaning, tone and language."


def language_profile_prompt(language: str) -> str:
    return (
        f"Create a concise writing profile for content written in {language}. Cover grammar pitfalls, "
        "spelling conventions, formality norms, punctuation and typography rules, and common mistakes "
        "made by machine translation.\n"
        "Respond in clear, actionable bullet points. Do not include generic advice that applies to all "
        f"languages; focus on what is unique or especially important for {language}."
    )


def keywords_prompt(keyword: str) -> str:
    return (
        f'Generate 10 related SEO keywords for "{keyword}". Return them as a single comma-separated list '
        "with no numbering or extra text."
    )


# ------------------------------------------------------------------------------
# Editing
# ------------------------------------------------------------------------------

ANALYZE_CONTENT_SYSTEM = (
    "You are an SEO content editor. Review the article for the main keyword and respond with a JSON object "
    'with three arrays of strings: "headlines" (alternative headline ideas), "sections" (missing sections '
    'worth adding) and "improvements" (concrete edits to the existing text).'
)


def analyze_content_prompt(content: str, main_keyword: str) -> str:
    return f"Main keyword: {main_keyword}\n\nContent:\n{content}"


def chat_system_prompt(current_content: str) -> str:
    return f"""You are a helpful writing assistant that helps modify content. You should respond in a specific JSON format that describes the changes to make.

The current content is:
{current_content}

Rules:
1. Keep the content as close to the original as possible
2. Use the same tone, style and language as the original content
3. Always maintain proper HTML formatting and structure

Your response should be a JSON object with this structure:
{{
  "updates": [
    {{
      "type": "insert" | "modify" | "delete",
      "position": "before" | "after" | "replace",
      "target": "section identifier (optional), e.g. h2:Section title",
      "content": "HTML content to insert/modify",
      "explanation": "Explanation of the changes"
    }}
  ]
}}"""


def rewrite_prompt(content: str, main_keyword: str, related_keywords: List[str]) -> str:
    related = ", ".join(related_keywords) if related_keywords else "none"
    return (
        f"Rewrite the following content so it is optimized for the main keyword \"{main_keyword}\". "
        f"Weave in these related keywords where natural: {related}.\n"
        "Keep the original language and meaning, improve readability, and use <h2> and <h3> headings "
        "for sections. Separate paragraphs with a blank line.\n\n"
        f"Content:\n{content}"
    )


REWRITE_SYSTEM = "You are an expert SEO copywriter who rewrites content to rank well while staying natural and accurate."


ENHANCE_ACTIONS = {
    "expand": "You specialize in expanding text while maintaining the original style and tone.",
    "improve": (
        "You specialize in improving text clarity and professionalism. Keep the original tone, style "
        "and language of the text."
    ),
    "explain": "You specialize in editing text. YOUR OUTPUT SHOULD ONLY BE THE EDITED TEXT AND NOTHING ELSE",
}


def enhance_messages(action: str, text: str, focus: str | None) -> List[dict]:
    system = "You are a professional content writer and editor. " + ENHANCE_ACTIONS[action]
    if action == "expand":
        user = f'Expand the following text while maintaining its style and adding relevant details: "{text}"'
    elif action == "improve":
        user = (
            "Improve this text by making it more clear, professional, and engaging while maintaining its "
            f'core message: "{text}"'
        )
    elif focus:
        user = f'Edit the following text to improve it specifically in terms of {focus}: "{text}"'
    else:
        user = f'Edit the following text to improve it in terms of clarity, structure, and effectiveness: "{text}"'
    return [{"role": "system", "content": system}, {"role": "user", "content": user}]


# ------------------------------------------------------------------------------
# Commerce
# ------------------------------------------------------------------------------

def product_description_system(website: dict, title: str, existing_description: str | None) -> str:
    return f"""You are an expert e-commerce copywriter.
Reflect the brand's identity as described: {website.get('description', '')}

Content Structure
- Begin with a compelling sentence that addresses a relatable problem, need, or aspiration.
- Turn the product's features into benefits.
- Use bullet points or concise paragraphs for scannability.
- End with a strong, action-oriented call to action.

SEO Optimization
- Primary Keyword: {title}
- Use the primary keyword naturally within the first 100 words and 2-3 times throughout.
- Avoid keyword stuffing.

Required Inputs
- Product Name: {title}
- Target Audience: {website.get('targetAudience', '')}
- Brand Summary: {website.get('summary', '')}
- Previous Description (for reference): {existing_description or 'No previous description'}

Writing Style Rules
- Keep sentences under 25 words and use active voice.
- Ensure the tone matches: {website.get('toneofvoice', '')}
- Write in the same language as the previous description.

IMPORTANT: Return ONLY the HTML formatted description.
{HTML_OUTPUT_RULES}"""


def product_description_user(title: str) -> str:
    return (
        f'Create a compelling product description for "{title}". Return only the HTML formatted '
        "description, no other text. Make sure the language is the same as the previous description."
    )


def summarize_products(products: List[dict]) -> str:
    titles = [p.get("title") or "" for p in products]
    types = sorted({p.get("product_type") for p in products if p.get("product_type")})
    snippets = []
    for product in products[:3]:
        body = product.get("body_html") or ""
        snippets.append(f"- {product.get('title', '')}: {body[:200]}")
    lines = [f"Number of products: {len(products)}"]
    if types:
        lines.append(f"Product types: {', '.join(types)}")
    lines.append("Example products: " + ", ".join(titles[:10]))
    if snippets:
        lines.append("Sample product descriptions:\n" + "\n".join(snippets))
    return "\n".join(lines)


def collection_system_prompt(language: str, target_country: str) -> str:
    return (
        "You are an expert e-commerce copywriter who writes SEO-optimized collection descriptions in HTML.\n"
        f"{localization.get_outline_language_instruction(language)}\n"
        f"{localization.get_country_context(target_country)}\n"
        "Write only the requested part. Do not repeat headings; they are added separately.\n"
        f"{ARTICLE_FORMAT_RULES}"
    )


def collection_section_prompt(title: str, part: str, product_summary: str, previous: str,
                              current_description: str | None) -> str:
    context = f"Previous content (do not repeat):\n{previous}\n\n" if previous else ""
    reference = f"Current description for reference:\n{current_description}\n\n" if current_description else ""
    return (
        f"{context}{reference}Collection: {title}\n{product_summary}\n\n"
        f"Write the {part} for this collection page in 80-150 words."
    )
