"""Prompt builders for the AI endpoints. Every structured prompt asks for JSON."""

import json

from getmeachai.core.config import setting


def campaign_story_prompt(category, brief, goal, project_type='creative project'):
    return f"""You are an expert crowdfunding campaign writer. Create a compelling campaign story for a {category} project.

Project Details:
- Category: {category}
- Type: {project_type}
- Goal: ₹{goal}
- Brief Description: {brief}

Generate a well-structured campaign story with the following sections:

1. **Catchy Title** (10-15 words max, emotional and action-oriented)
2. **Hook** (2-3 sentences that grab attention immediately)
3. **The Problem** (What problem does this project solve?)
4. **The Solution** (How will this project solve it?)
5. **Why Now** (Why is this the right time?)
6. **About Me/Us** (Brief creator background, builds trust)
7. **How Funds Will Be Used** (Transparent breakdown)
8. **Impact** (What difference will this make?)
9. **Call to Action** (Compelling ask for support)

Make it authentic and personal, emotionally engaging, specific with details,
optimistic but realistic, and around 400-600 words total.

Format as JSON:
{{
  "title": "Campaign title",
  "hook": "Opening hook paragraph",
  "story": "Full campaign story with all sections"
}}"""


def goal_suggestion_prompt(category, brief, project_type='creative project'):
    return f"""You are a crowdfunding expert analyzing funding goals.

Project Details:
- Category: {category}
- Type: {project_type}
- Description: {brief}

Based on similar successful campaigns in this category, suggest a realistic funding goal in INR (Indian Rupees).

Consider average successful goals in {category}, the project scope and complexity,
typical costs for {project_type} projects and market standards in India.

Provide response as JSON:
{{
  "suggestedGoal": 50000,
  "reasoning": "Brief explanation of why this amount",
  "breakdown": {{
    "development": 20000,
    "marketing": 10000,
    "operations": 15000,
    "contingency": 5000
  }}
}}"""


def milestones_prompt(goal, category, duration=30):
    return f"""Create 4-5 realistic funding milestones for a {category} crowdfunding campaign.

Campaign Details:
- Total Goal: ₹{goal}
- Category: {category}
- Duration: {duration} days

Create milestones that are evenly distributed (25%, 50%, 75%, 100%), have specific
achievable deliverables, build momentum and are realistic for the timeline.

Format as JSON array:
[
  {{
    "percentage": 25,
    "amount": {int(goal * 0.25)},
    "title": "Milestone title",
    "description": "What will be achieved",
    "deliverable": "Specific output"
  }}
]"""


def reward_tiers_prompt(goal, category, brief=''):
    return f"""Create 4-5 attractive reward tiers for a {category} crowdfunding campaign.

Campaign Details:
- Goal: ₹{goal}
- Category: {category}
- Project: {brief}

Create tiers that start from ₹100 (entry level), scale up to ₹5000+ (premium),
offer real value at each level and are relevant to the project.

Format as JSON array:
[
  {{
    "amount": 100,
    "title": "Reward tier name",
    "description": "What supporters get",
    "deliveryTime": "Estimated delivery (e.g., '1 month after campaign ends')",
    "limited": false,
    "quantity": null
  }}
]"""


def faqs_prompt(category, story, goal):
    return f"""Generate 6-8 common FAQs for a {category} crowdfunding campaign.

Campaign Context:
- Category: {category}
- Goal: ₹{goal}
- Story: {story[:500]}...

Address how funds will be used, timeline and delivery, refund policy, creator
credibility, project risks, stretch goals, update frequency and contact details.

Format as JSON array:
[
  {{
    "question": "Question text?",
    "answer": "Detailed answer"
  }}
]"""


def quality_scoring_prompt(campaign):
    story = campaign.get('story') or ''
    return f"""You are a crowdfunding expert evaluating campaign quality.

Analyze this campaign and provide a quality score (0-100) with detailed feedback:

Campaign Data:
- Title: {campaign.get('title', '')}
- Category: {campaign.get('category', '')}
- Goal: ₹{campaign.get('goal_amount') or campaign.get('goal') or 0}
- Story Length: {len(story)} characters
- Has Cover Image: {'Yes' if campaign.get('cover_image') else 'No'}
- Number of Rewards: {len(campaign.get('rewards') or [])}
- Number of FAQs: {len(campaign.get('faqs') or [])}
- Milestones: {len(campaign.get('milestones') or [])}

Evaluate on:
1. Story Quality (25 points) - Clarity, emotion, structure
2. Goal Realism (20 points) - Appropriate for scope
3. Visual Quality (20 points) - Images, presentation
4. Reward Attractiveness (15 points) - Value, creativity
5. FAQs Completeness (10 points) - Coverage, clarity
6. Overall Presentation (10 points) - Professional, complete

Provide response as JSON:
{{
  "overallScore": 85,
  "scores": {{"story": 22, "goal": 18, "visuals": 15, "rewards": 12, "faqs": 8, "presentation": 10}},
  "insights": ["Specific improvement suggestion"],
  "strengths": ["What's good"],
  "improvements": ["What needs work"]
}}"""


def chatbot_system_prompt(user_context=None):
    prompt = f"""You are a helpful AI assistant for "{setting('APP_NAME', 'Get Me A Chai')}", a crowdfunding platform.

Your role:
- Help users create successful campaigns
- Answer questions about the platform
- Provide crowdfunding best practices
- Troubleshoot payment issues
- Guide users through features

Be friendly and encouraging, concise but helpful, and specific with examples.

If you don't know something, direct users to {setting('SUPPORT_EMAIL', 'support@getmeachai.com')}"""
    if user_context:
        prompt += f"\n\nUser context:\n{json.dumps(user_context, default=str)[:2000]}"
    return prompt


def recommendations_prompt(interests, contributed_categories, candidates):
    listing = '\n'.join(
        f"- id={c['id']} | {c['title']} | {c['category']} | {round(c.get('progress') or 0)}% funded"
        for c in candidates
    )
    return f"""Analyze user behavior and recommend relevant crowdfunding campaigns.

User Data:
- Recently viewed categories: {', '.join(interests) or 'None'}
- Categories they have supported: {', '.join(contributed_categories) or 'None'}

Candidate campaigns:
{listing}

Recommend up to 6 campaigns that match the user's interests, are at critical
funding stages or have high success probability. Only use ids from the list.

Format as JSON array:
[
  {{"id": 1, "score": 90, "reason": "One sentence on why it fits"}}
]"""


def weekly_tips_prompt(summary):
    return f"""You are a crowdfunding coach. A creator had this week:
- Earnings: ₹{summary.get('earnings', 0)}
- New supporters: {summary.get('new_supporters', 0)}
- Page views: {summary.get('views', 0)}
- Conversion rate: {summary.get('conversion_rate', 0)}%
- Active campaigns: {summary.get('active_campaigns', 0)}

Give exactly 3 short, specific, actionable tips for next week.

Format as JSON array of strings:
["Tip one", "Tip two", "Tip three"]"""
