"""批量获取编排

把扁平的 Repository 描述展开为引用，逐个交给 RepoEngine.get()。

- 默认 fail-fast：首个失败后其余仓库标记为 skipped
- continue_on_error=True 时处理完整个列表
- max_workers > 1 时并发处理；同一本地路径由引擎的路径锁串行化
- ContractError（编程错误）始终中止整个批次并向上抛出
"""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Sequence

from flystart.core.config import Config, get_config, resolve_projects_dir
from flystart.core.exceptions import RepoError
from flystart.core.models import GetResult, GitRepoRef, Repository

if TYPE_CHECKING:
    from flystart.services.repo.engine import RepoEngine

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RepoOutcome:
    """单个代码仓的处理结果"""

    local_name: str
    status: OutcomeStatus
    result: GetResult | None = None
    error: str = ""
    step: str = ""

    @property
    def ok(self) -> bool:
        return self.status is OutcomeStatus.OK


@dataclass
class BatchReport:
    """批量获取报告"""

    outcomes: list[RepoOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(o.ok for o in self.outcomes)

    @property
    def failed(self) -> list[RepoOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.FAILED]

    @property
    def skipped(self) -> list[RepoOutcome]:
        return [o for o in self.outcomes if o.status is OutcomeStatus.SKIPPED]

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def summary(self) -> str:
        ok = sum(1 for o in self.outcomes if o.ok)
        return f"{ok} 成功, {len(self.failed)} 失败, {len(self.skipped)} 跳过"


class BulkOrchestrator:
    """批量代码仓获取"""

    def __init__(
        self,
        engine: RepoEngine | None = None,
        *,
        config: Config | None = None,
        projects_dir: str | Path = "",
        continue_on_error: bool | None = None,
        max_workers: int | None = None,
    ) -> None:
        self.config = config or get_config()
        if engine is None:
            from flystart.services.repo.engine import create_repo
            engine = create_repo(config=self.config)
        self.engine = engine
        self.projects_dir = projects_dir
        self.continue_on_error = (
            self.config.continue_on_error if continue_on_error is None else continue_on_error
        )
        self.max_workers = max(1, max_workers or self.config.max_workers)

    def run(self, repositories: Sequence[Repository]) -> BatchReport:
        """处理全部代码仓描述，返回逐仓结果"""
        root = resolve_projects_dir(str(self.projects_dir) or self.config.projects_dir)
        defaults = self.config.archive_defaults()
        refs = [(repo.local, repo.to_ref(defaults)) for repo in repositories]
        logger.info(
            "开始批量获取: %d 个代码仓 -> %s (workers=%d, continue_on_error=%s)",
            len(refs), root, self.max_workers, self.continue_on_error,
        )

        if self.max_workers == 1 or len(refs) <= 1:
            outcomes = self._run_sequential(refs, root)
        else:
            outcomes = self._run_parallel(refs, root)

        report = BatchReport(outcomes=outcomes)
        log = logger.info if report.success else logger.warning
        log("批量获取完成: %s", report.summary())
        return report

    def _get_one(self, local: str, ref: GitRepoRef, root: Path) -> RepoOutcome:
        try:
            result = self.engine.get(ref, root)
        except RepoError as e:
            logger.error("代码仓获取失败: %s", e)
            return RepoOutcome(local, OutcomeStatus.FAILED, error=str(e), step=e.step)
        return RepoOutcome(local, OutcomeStatus.OK, result=result)

    def _run_sequential(
        self, refs: list[tuple[str, GitRepoRef]], root: Path,
    ) -> list[RepoOutcome]:
        outcomes: list[RepoOutcome] = []
        for local, ref in refs:
            if outcomes and not outcomes[-1].ok and not self.continue_on_error:
                outcomes.append(RepoOutcome(local, OutcomeStatus.SKIPPED))
                continue
            outcomes.append(self._get_one(local, ref, root))
        return outcomes

    def _run_parallel(
        self, refs: list[tuple[str, GitRepoRef]], root: Path,
    ) -> list[RepoOutcome]:
        results: dict[int, RepoOutcome] = {}
        pool = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="flystart")
        try:
            futures: dict[Future[RepoOutcome], int] = {
                pool.submit(self._get_one, local, ref, root): i
                for i, (local, ref) in enumerate(refs)
            }
            for fut in as_completed(futures):
                if fut.cancelled():
                    continue
                outcome = fut.result()
                results[futures[fut]] = outcome
                if not outcome.ok and not self.continue_on_error:
                    for pending in futures:
                        pending.cancel()
        finally:
            pool.shutdown(wait=True, cancel_futures=True)

        return [
            results.get(i) or RepoOutcome(local, OutcomeStatus.SKIPPED)
            for i, (local, _) in enumerate(refs)
        ]
