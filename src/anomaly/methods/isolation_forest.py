"""
Isolation forest over joint cpu/memory/disk/network samples.

Wraps scikit-learn's IsolationForest. Its score_samples returns -s(x) with

    s(x) = 2 ** (-E[h(x)] / c(psi))

(Liu et al., 2008), where h(x) is the path length of x in one tree and
c(psi) the average path length over psi points. s is ~0.5 for typical points
and tends to 1 for outliers; the reported anomaly score rescales [0.5, 1] to
[0, 1] so typical points sit near 0.

Per-metric contributions walk each tree's decision path: every split credits
its feature with the fraction of the node's training points it separated
from the query.
"""

import math
import threading
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
import structlog
from sklearn.ensemble import IsolationForest

from ..models import METRICS, MultiMetricSample, MultivariateVerdict

logger = structlog.get_logger(__name__)

MAX_TREES = 500
MAX_SAMPLES = 2**16  # tree depth is ceil(log2(max_samples)), so at most 16


@dataclass
class IsolationForestConfig:
    """Configuration for the multivariate detector"""

    n_trees: int = 100
    max_samples: int = 256  # subsample size per tree
    anomaly_threshold: float = 0.3  # on the rescaled [0, 1] score, i.e. raw s > 0.65
    min_training_samples: int = 50
    max_training_samples: int = 4096  # larger training sets are subsampled
    random_state: int | None = 42

    def __post_init__(self):
        if self.n_trees <= 0 or self.max_samples < 2:
            raise ValueError("n_trees must be positive and max_samples at least 2")
        if not 0.0 <= self.anomaly_threshold < 1.0:
            raise ValueError("anomaly_threshold must be within [0, 1)")
        if self.min_training_samples < 2:
            raise ValueError("min_training_samples must be at least 2")
        if self.max_training_samples < self.min_training_samples:
            raise ValueError("max_training_samples must not be below min_training_samples")
        self.n_trees = min(self.n_trees, MAX_TREES)
        self.max_samples = min(self.max_samples, MAX_SAMPLES)

    @property
    def max_depth(self) -> int:
        """Depth limit of every tree"""
        return math.ceil(math.log2(self.max_samples))


def path_contributions(model: IsolationForest, point: np.ndarray) -> np.ndarray:
    """Share of isolation credit per feature for a single point of shape (1, n_features)

    Returns zeros when no tree splits on the path.
    """
    credit = np.zeros(point.shape[1])
    for tree, features in zip(model.estimators_, model.estimators_features_):
        path = tree.decision_path(point[:, features])
        # children always have larger ids than their parent
        nodes = np.sort(path.indices[path.indptr[0] : path.indptr[1]])
        counts = tree.tree_.n_node_samples
        split_features = tree.tree_.feature
        for parent, child in zip(nodes[:-1], nodes[1:]):
            credit[features[split_features[parent]]] += (counts[parent] - counts[child]) / counts[parent]

    total = credit.sum()
    return credit / total if total > 0 else credit


@dataclass(frozen=True)
class _Forest:
    """Immutable trained model; replaced wholesale on every fit"""

    model: IsolationForest
    sample_size: int
    trained_samples: int
    version: int


@dataclass
class DetectorStatus:
    is_trained: bool
    trained_samples: int = 0
    version: int = 0


class MultivariateOutlierDetector:
    """Isolation forest over joint (cpu, memory, disk, network) samples"""

    def __init__(self, config: IsolationForestConfig | None = None):
        self.config = config or IsolationForestConfig()
        self._forest: _Forest | None = None
        self._version = 0
        self._version_lock = threading.Lock()
        self._rng = np.random.default_rng(self.config.random_state)

    @property
    def is_trained(self) -> bool:
        return self._forest is not None

    def fit(self, samples: Sequence[MultiMetricSample]) -> bool:
        """Train a new forest and swap it in

        Training sets above max_training_samples are uniformly subsampled.

        Returns:
            True if a model was trained, False if there was not enough data
        """
        finite = [s.vector() for s in samples if s.is_finite()]
        if len(finite) < self.config.min_training_samples:
            logger.debug(
                "Not enough joint samples to train isolation forest",
                samples=len(finite),
                required=self.config.min_training_samples,
            )
            return False

        with self._version_lock:
            self._version += 1
            version = self._version
            seed = int(self._rng.integers(0, 2**31 - 1))

        data = np.asarray(finite, dtype=float)
        if len(data) > self.config.max_training_samples:
            rng = np.random.default_rng(seed)
            data = data[rng.choice(len(data), size=self.config.max_training_samples, replace=False)]
            logger.debug("Subsampled isolation forest training set", available=len(finite), used=len(data))

        sample_size = min(self.config.max_samples, len(data))
        model = IsolationForest(
            n_estimators=self.config.n_trees,
            max_samples=sample_size,
            random_state=seed,
        )
        model.fit(data)

        self._forest = _Forest(
            model=model,
            sample_size=sample_size,
            trained_samples=len(data),
            version=version,
        )
        logger.info(
            "Isolation forest trained",
            samples=len(data),
            trees=self.config.n_trees,
            sample_size=sample_size,
            version=version,
        )
        return True

    def detect(self, sample: MultiMetricSample) -> MultivariateVerdict:
        forest = self._forest  # single read: a concurrent fit cannot tear this call
        if forest is None or not sample.is_finite():
            return MultivariateVerdict(
                is_anomaly=False,
                anomaly_score=0.0,
                confidence=0.0,
                metric_contributions={metric: 0.0 for metric in METRICS},
            )

        point = np.asarray([sample.vector()], dtype=float)
        raw_score = -float(forest.model.score_samples(point)[0])
        anomaly_score = float(np.clip((raw_score - 0.5) / 0.5, 0.0, 1.0))
        shares = path_contributions(forest.model, point)

        return MultivariateVerdict(
            is_anomaly=anomaly_score > self.config.anomaly_threshold,
            anomaly_score=anomaly_score,
            confidence=self._confidence(forest),
            metric_contributions={metric: float(share) for metric, share in zip(METRICS, shares)},
        )

    def _confidence(self, forest: _Forest) -> float:
        return min(1.0, 0.5 + 0.5 * forest.trained_samples / self.config.max_samples)

    def reset(self) -> None:
        self._forest = None
        logger.debug("Isolation forest reset")

    def status(self) -> DetectorStatus:
        forest = self._forest
        if forest is None:
            return DetectorStatus(is_trained=False)
        return DetectorStatus(
            is_trained=True,
            trained_samples=forest.trained_samples,
            version=forest.version,
        )
