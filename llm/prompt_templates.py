"""
Prompt Templates for the Insurance Sales Assistant.

Manages prompt templates for different conversation contexts, plus the
fixed reply texts used by the premium calculation flow.
"""

from enum import Enum
from typing import Any, Dict, List, Optional


class PromptType(Enum):
    """Types of prompts."""
    GENERAL = "general"
    SALES = "sales"
    PRODUCT = "product"
    OBJECTION = "objection"
    CLAIMS = "claims"
    SUPPORT = "support"
    COMPARISON = "comparison"


class PromptTemplates:
    """
    Manages prompt templates for the assistant.

    Templates are written for insurance sales in Ghana with a lead
    generation focus.
    """

    # System prompts
    SYSTEM_PROMPTS = {
        PromptType.GENERAL: """You are BRAND's AI insurance agent, a friendly insurance consultant in Ghana.

Your role:
1. Answer customer questions accurately using the provided company knowledge
2. Be helpful, professional, and conversational
3. Guide customers towards the right cover when appropriate
4. Collect lead information naturally without being pushy

Guidelines:
- Always base your answers on the provided context
- If information is not in the context, say so honestly
- Reference Ghana-specific context (mobile money, local risks) where relevant
- Never make up prices, benefits or exclusions
- Use "Akwaaba!" for a first interaction

Response format:
- Keep responses concise but helpful (2-3 short paragraphs max)
- Use bullet points for benefit lists
- End with a relevant question or call-to-action""",

        PromptType.SALES: """You are BRAND's AI Sales Consultant for insurance in Ghana.

Your goals:
1. Understand the customer's needs and budget
2. Recommend suitable cover from our products
3. Offer to calculate a premium when the customer is interested
4. Guide towards an application or a call with a specialist

Lead qualification checklist (gather naturally):
- Type of insurance needed
- Age and location
- What needs covering (vehicle, family, business)
- Timeline for starting cover

Always maintain professionalism and never pressure the customer.""",

        PromptType.PRODUCT: """You are BRAND's product expert for insurance cover.

Your role:
1. Explain what each product covers and excludes, using the context
2. Explain insurance terms in simple language
3. Highlight the benefits most relevant to the customer

Never fabricate benefits or limits.""",

        PromptType.OBJECTION: """You are BRAND's AI insurance agent handling a customer's concern.

Approach:
- Acknowledge the concern with empathy
- Answer it with evidence from the company knowledge (claims record, payment options, flexible plans)
- Offer a lower-cost alternative when price is the concern
- Never argue or pressure; leave the door open""",

        PromptType.CLAIMS: """You are BRAND's claims assistant.

Your role:
1. Explain the claims process step by step using the context
2. List the documents usually required
3. Offer to connect the customer with the claims team

Be calm and reassuring; the customer may have just had a loss.""",

        PromptType.SUPPORT: """You are BRAND's Customer Support Assistant.

Guidelines:
- Be empathetic and solution-oriented
- Acknowledge the concern and apologize for any inconvenience
- Offer concrete next steps
- Escalate to a human agent when you cannot resolve the issue""",

        PromptType.COMPARISON: """You are BRAND's insurance comparison expert.

Your role:
1. Compare cover options objectively (for example comprehensive vs third party)
2. Highlight strengths of each option
3. Help the customer choose based on their priorities and budget

Present facts from the context, not opinions.""",
    }

    # User prompt templates
    USER_TEMPLATES = {
        "rag_query": """Use the following company knowledge to answer the customer.

<context>
{context}
</context>

Customer analysis:
{analysis}

Customer: {query}

Remember to:
1. Base your answer on the context provided
2. Be helpful and conversational
3. If the answer isn't in the context, say so
4. Suggest next steps when appropriate""",

        "rag_with_history": """Previous conversation ({exchanges} exchanges):
{history}

Current context:
<context>
{context}
</context>

Customer analysis:
{analysis}

Customer: {query}

Continue the conversation naturally and do not repeat information already given.""",
    }

    # Missing-field questions for the premium flow, with an example answer
    FIELD_QUESTIONS = {
        "age": ("your age", "I am 35"),
        "vehicle_value": ("the current value of your vehicle", "my car is worth 80,000 cedis"),
        "location": ("the city where the vehicle is mostly used", "Accra"),
        "coverage_type": ("the cover you want", "comprehensive or third party"),
        "plan_type": ("the plan level", "basic, standard or premium plan"),
        "family_size": ("how many people to cover", "family of 4"),
        "smoking_status": ("whether you smoke", "non-smoker"),
        "coverage_amount": ("the amount you want to be covered for", "cover of 200,000 cedis"),
        "business_type": ("the type of business", "retail shop"),
        "employee_count": ("the number of employees", "12 employees"),
        "property_value": ("the value of your premises and stock", "property worth 500,000 cedis"),
        "annual_revenue": ("your annual revenue", "revenue of 1,200,000 cedis"),
    }

    INSURANCE_TYPE_QUESTION = (
        "I'd be happy to calculate a premium for you! Which type of insurance are you "
        "interested in: auto, health, life or business?"
    )

    COVERAGE_EXPLANATION = """Here is the difference between the two motor covers:

• *Comprehensive* covers damage to your own vehicle (accident, fire, theft) as well as damage or injury you cause to other people.
• *Third party* is the legal minimum in Ghana. It only covers damage or injury you cause to other people, not repairs to your own vehicle.

Comprehensive costs more but protects your own car. Would you like a quote for either option?"""

    DISAMBIGUATION_PROMPT = """Happy to help! What would you like to do next?

1. Get a cheaper *third party* quote
2. Understand what the cover includes
3. Apply for this policy

Just reply with the option you prefer."""

    THIRD_PARTY_OFFER = "Would you like to see a cheaper third-party quote for comparison?"

    APPLY_PROMPT = "Reply 'apply' whenever you're ready."

    HANDOFF_MESSAGE = """Excellent choice! 🎉 I'm connecting you with one of our insurance specialists to complete your application.

They'll confirm your details, answer any final questions and get your cover started. Please share your phone number or email if you haven't already, and a specialist will reach out shortly."""

    FALLBACK_APOLOGY = (
        "I apologize, but I'm having a technical moment! Let me connect you with one of "
        "our human agents who can help you right away."
    )

    NO_KNOWLEDGE_FALLBACK = (
        "Thanks for your message! I can help with auto, health, life and business insurance "
        "in Ghana, including premium quotes. What would you like to know?"
    )

    @classmethod
    def get_system_prompt(
        cls,
        prompt_type: PromptType = PromptType.GENERAL,
        brand_name: str = "Ghana Insurance Assist",
        custom_instructions: Optional[str] = None
    ) -> str:
        """
        Get system prompt for a given type.

        Args:
            prompt_type: Type of prompt
            brand_name: Brand name to use
            custom_instructions: Additional custom instructions

        Returns:
            Formatted system prompt
        """
        prompt = cls.SYSTEM_PROMPTS.get(prompt_type, cls.SYSTEM_PROMPTS[PromptType.GENERAL])
        prompt = prompt.replace("BRAND", brand_name)

        if custom_instructions:
            prompt += f"\n\nAdditional instructions:\n{custom_instructions}"

        return prompt

    @classmethod
    def get_user_prompt(cls, template_name: str, **kwargs) -> str:
        """Get formatted user prompt."""
        template = cls.USER_TEMPLATES.get(template_name, "{query}")
        return template.format(**kwargs)

    @classmethod
    def build_rag_prompt(
        cls,
        query: str,
        context: str,
        analysis: str,
        conversation_history: Optional[str] = None,
        exchanges: int = 0
    ) -> str:
        """
        Build a RAG prompt with context.

        Args:
            query: Customer message
            context: Retrieved knowledge
            analysis: Summary of the customer analysis
            conversation_history: Optional formatted history
            exchanges: Completed exchanges so far

        Returns:
            Formatted prompt
        """
        if conversation_history:
            return cls.get_user_prompt(
                "rag_with_history",
                query=query,
                context=context,
                analysis=analysis,
                history=conversation_history,
                exchanges=exchanges,
            )
        return cls.get_user_prompt("rag_query", query=query, context=context, analysis=analysis)

    @classmethod
    def detect_prompt_type(cls, query: str, intent: Optional[str] = None) -> PromptType:
        """
        Detect appropriate prompt type based on query.

        Args:
            query: Customer message
            intent: Optional detected intent

        Returns:
            Appropriate PromptType
        """
        intent_mapping = {
            "purchase": PromptType.SALES,
            "premium_quote": PromptType.SALES,
            "objection": PromptType.OBJECTION,
            "claim": PromptType.CLAIMS,
            "complaint": PromptType.SUPPORT,
            "comparison": PromptType.COMPARISON,
        }

        if intent and intent in intent_mapping:
            return intent_mapping[intent]

        query_lower = query.lower()

        if any(word in query_lower for word in ["compare", "vs", "versus", "difference"]):
            return PromptType.COMPARISON

        if any(word in query_lower for word in ["cover", "benefit", "exclusion", "include"]):
            return PromptType.PRODUCT

        return PromptType.GENERAL

    @classmethod
    def missing_fields_prompt(cls, insurance_type: str, missing_fields: List[str]) -> str:
        """Ask for every missing calculation field, each with an example."""
        lines = [
            f"To calculate your {insurance_type} insurance premium, I just need a few more details:",
            "",
        ]
        for name in missing_fields:
            label, example = cls.FIELD_QUESTIONS.get(name, (name.replace("_", " "), ""))
            suffix = f' (e.g. "{example}")' if example else ""
            lines.append(f"• {label.capitalize()}{suffix}")
        lines.append("")
        lines.append("You can send them all in one message.")
        return "\n".join(lines)

    @staticmethod
    def format_analysis(analysis: Dict[str, Any]) -> str:
        """One-line-per-field summary of a customer analysis for prompts."""
        keys = ("primary_intent", "urgency", "lead_readiness", "emotional_state", "objections", "product_interest")
        return "\n".join(f"- {key}: {analysis.get(key)}" for key in keys if analysis.get(key) not in (None, [], ""))
