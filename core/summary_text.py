from typing import List

from models.schemas import AILogsAnalysis, Deal, DealProgress, EmailAnalysis

def generate_summary_text(
    deal: Deal,
    email_analysis: EmailAnalysis,
    ai_logs_analysis: AILogsAnalysis,
    deal_progress: DealProgress,
    roadblocks: List[str]
) -> str:
    """Compose the narrative paragraph; clauses appear in a fixed order, trailing space kept"""

    summary = f'Deal "{deal.name}" is currently in the {deal.stage} stage. '

    if email_analysis.total_emails > 0:
        summary += (
            f"Customer engagement is {email_analysis.engagement_level} "
            f"with an average response time of {email_analysis.response_time}. "
        )
    else:
        summary += "Limited email communication data available. "

    summary += f"The deal has been in the current stage for {deal_progress.time_in_stage}. "

    if ai_logs_analysis.total_logs > 0:
        summary += (
            f"Recent AI activity shows {ai_logs_analysis.recent_activity} "
            f"with {len(ai_logs_analysis.key_insights)} key actions. "
        )

    if roadblocks:
        summary += f"Key roadblocks identified: {', '.join(roadblocks)}. "

    return summary
