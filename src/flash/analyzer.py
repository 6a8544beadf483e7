from dataclasses import dataclass, field
from typing import List, Optional

from flash import prompts
from flash.llm import DEFAULT_MAX_TOKENS, ChatMessage, LLMClient, LLMError
from flash.logger import setup_logger
from flash.parser import Vulnerability, parse_vulnerabilities

logger = setup_logger(__name__)


class AnalysisError(RuntimeError):
    pass


@dataclass
class AnalysisResult:
    summary: str
    detailed: str
    vulnerabilities: List[Vulnerability] = field(default_factory=list)


class VulnerabilityAnalyzer:
    """
    Two-stage review of one source file:
      1. initial analysis: high-level summary of potential vulnerabilities
      2. detailed analysis: the summary is fed back and the model reports each finding
         with the Title/Description/Proof of Concept/Severity/Vulnerable Code/Recommended Fix
         labels, which are then parsed into Vulnerability records
    """

    def __init__(
        self,
        client: LLMClient,
        *,
        model_or_deployment: Optional[str] = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: Optional[float] = None,
    ):
        self.client = client
        self.model_or_deployment = model_or_deployment
        self.max_tokens = max_tokens
        self.temperature = temperature

    def _ask(self, system_prompt: str, code: str) -> str:
        logger.debug(f"Making API call with prompt: {system_prompt}")
        messages = [
            ChatMessage(role="system", content=system_prompt),
            ChatMessage(role="user", content=code),
        ]
        return self.client.chat(
            messages,
            model_or_deployment=self.model_or_deployment,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )

    def initial_analysis(self, code: str) -> str:
        try:
            summary = self._ask(prompts.INITIAL_ANALYSIS_PROMPT, code)
        except LLMError as e:
            raise AnalysisError(f"initial analysis failed: {e}") from e
        logger.debug(f"Initial analysis result: {summary}")
        return summary

    def detailed_analysis(self, code: str, summary: str) -> str:
        try:
            detailed = self._ask(prompts.detailed_analysis_prompt(summary), code)
        except LLMError as e:
            raise AnalysisError(f"detailed analysis failed: {e}") from e
        logger.debug(f"Detailed analysis result: {detailed}")
        return detailed

    def run(self, code: str) -> AnalysisResult:
        logger.info("Starting code analysis...")
        summary = self.initial_analysis(code)
        detailed = self.detailed_analysis(code, summary)
        vulnerabilities = parse_vulnerabilities(detailed)
        logger.info(f"Parsed {len(vulnerabilities)} vulnerabilities")
        return AnalysisResult(summary=summary, detailed=detailed, vulnerabilities=vulnerabilities)

    def analyze(self, code: str) -> List[Vulnerability]:
        return self.run(code).vulnerabilities
