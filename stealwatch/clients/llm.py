import logging

import requests

from stealwatch.core.exceptions import LLMError
from stealwatch.models.stats import PeriodStats


PERIOD_DESCRIPTIONS = {
    'daily': '24 hours',
    'weekly': '7 days',
    'monthly': '30 days',
}


class LLMClient:
    """Optional narrative for a report from an OpenAI-compatible chat API.

    Returns an empty string when AI is disabled overall or for the report's
    period. Errors raise LLMError; callers send the report without narrative.
    """

    def __init__(self, enabled=False, api_url='', api_key='', model='gpt-4o-mini',
                 periods=('daily', 'weekly', 'monthly'), timeout=30):
        self.enabled = enabled
        self.api_url = api_url
        self.api_key = api_key
        self.model = model
        self.periods = set(periods)
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings):
        periods = [p for p, on in (('daily', settings.AI_DAILY),
                                   ('weekly', settings.AI_WEEKLY),
                                   ('monthly', settings.AI_MONTHLY)) if on]
        return cls(
            enabled=settings.AI_ENABLED,
            api_url=settings.AI_API_URL,
            api_key=settings.AI_API_KEY,
            model=settings.AI_MODEL,
            periods=periods,
        )

    def analyze(self, stats: PeriodStats) -> str:
        if not self.enabled or stats.period not in self.periods:
            return ''
        return self.complete(self.build_prompt(stats))

    def build_prompt(self, stats: PeriodStats) -> str:
        period = PERIOD_DESCRIPTIONS.get(stats.period, stats.period)
        prompt = (
            f"You are a VPS performance analyst. Based on the following {period} of monitoring data, "
            f"assess whether this VPS is oversold and give brief advice.\n\n"
            f"## Summary\n"
            f"- CPU steal time: avg {stats.cpu_steal_avg:.2f}%, max {stats.cpu_steal_max:.2f}%, "
            f"P95 {stats.cpu_steal_p95:.2f}%\n"
            f"- CPU iowait: avg {stats.cpu_iowait_avg:.2f}%, max {stats.cpu_iowait_max:.2f}%\n"
            f"- CPU benchmark: avg {stats.cpu_bench_avg:.2f}ms, coefficient of variation {stats.cpu_bench_cv:.3f}\n"
            f"- Sequential write latency: avg {stats.io_latency_avg:.2f}ms, P95 {stats.io_latency_p95:.2f}ms, "
            f"P99 {stats.io_latency_p99:.2f}ms\n"
            f"- Random 4KB I/O: write {stats.random_io_write_avg:.2f}ms, read {stats.random_io_read_avg:.2f}ms\n"
            f"- Memory available: {stats.memory_available_percent:.1f}%\n"
            f"- Load per core: avg {stats.cpu_load_avg:.2f}\n"
            f"- Storage type: {stats.storage_type.value}\n"
            f"- Baseline trend: {stats.baseline_status} ({stats.baseline_deviation:.1f}%)\n"
            f"- Rule-based score: {stats.total_score:.0f}/100\n\n"
            f"Reply in under 120 words:\n"
            f"1. One sentence on the oversell risk\n"
            f"2. The 1-2 issues most worth attention\n"
            f"3. One recommendation"
        )
        if stats.period == 'weekly':
            prompt += "\n\nAlso comment on this week's performance trend."
        elif stats.period == 'monthly':
            prompt += "\n\nAlso comment on the long-term trend and whether switching provider is advisable."
        return prompt

    def complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}
        try:
            response = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise LLMError(f"AI request failed: {e}") from e

        if not isinstance(data, dict):
            raise LLMError(f"AI API returned unexpected body: {type(data).__name__}")
        error = data.get('error')
        if error:
            message = error.get('message', error) if isinstance(error, dict) else error
            raise LLMError(f"AI API error: {message}")
        choices = data.get('choices') or []
        if not isinstance(choices, list) or not choices:
            raise LLMError("AI API returned no choices")
        message = choices[0].get('message') if isinstance(choices[0], dict) else None
        content = message.get('content') if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise LLMError("AI API returned a choice without message content")
        logging.info(f"AI narrative received ({len(content)} chars)")
        return content
