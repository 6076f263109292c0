"""Importance predictor: scoring, online/batch updates and checkpoints.

Wraps :class:`ImportanceNet` with the failure policy the rest of the engine
relies on: scoring never raises and degrades to ``0.5``; training calls log
and report ``False`` instead of raising.

Checkpoints are written to ``models_dir`` as ``model-<version>.pt``; the
version string is recovered from the filename when loading. ``initialize``
picks the most recently modified checkpoint in the directory.
"""

from __future__ import annotations

import copy
import hashlib
import math
import threading
from pathlib import Path
from typing import Sequence

import numpy as np
import torch
import torch.nn.functional as F

from importance_engine.config.config import (
    BATCH_MINIBATCH_SIZE,
    CHECKPOINT_PREFIX,
    CHECKPOINT_SUFFIX,
    DEFAULT_SCORE,
    DROPOUT_RATE,
    FEATURE_DIM,
    HIDDEN_1_DIM,
    HIDDEN_2_DIM,
    INFERENCE_DEVICE,
    INIT_SEED,
    LR_BATCH,
    LR_ONLINE,
    MODEL_VERSION_BASE,
    MODELS_DIR,
)
from importance_engine.features.vector import FeatureVector
from importance_engine.model.core.importance_net import ImportanceNet
from importance_engine.model.types import TrainingExample
from importance_engine.utils.datetime import version_stamp
from importance_engine.utils.decorators import timer
from importance_engine.utils.io import ensure_dir
from importance_engine.utils.logging import get_logger

logger = get_logger(__name__)


def checkpoint_name(version: str) -> str:
    return f"{CHECKPOINT_PREFIX}{version}{CHECKPOINT_SUFFIX}"


def parse_version(filename: str) -> str:
    """Recover the version from ``model-<version>.pt``; ``"unknown"`` otherwise."""
    if filename.startswith(CHECKPOINT_PREFIX) and filename.endswith(CHECKPOINT_SUFFIX):
        return filename[len(CHECKPOINT_PREFIX):-len(CHECKPOINT_SUFFIX)] or "unknown"
    return "unknown"


def list_checkpoints(models_dir: str | Path) -> list[Path]:
    directory = Path(models_dir)
    if not directory.is_dir():
        return []
    return [p for p in directory.glob(f"{CHECKPOINT_PREFIX}*{CHECKPOINT_SUFFIX}") if p.is_file()]


def latest_checkpoint(models_dir: str | Path) -> Path | None:
    """Most recently modified checkpoint in ``models_dir``, if any."""
    candidates = list_checkpoints(models_dir)
    if not candidates:
        return None
    return max(candidates, key=lambda p: (p.stat().st_mtime, p.name))


class Predictor:
    """Thread-aware owner of the importance network.

    Weight updates and checkpoint snapshots are serialised by an internal
    lock. Scoring does not take the lock, so a score may observe weights from
    just before or just after a concurrent update.

    Usage:
        predictor = Predictor(models_dir="datasets/models")
        predictor.initialize()
        score = predictor.score(vector)
    """

    def __init__(
        self,
        *,
        models_dir: str | Path = MODELS_DIR,
        device: str | torch.device = INFERENCE_DEVICE,
        seed: int = INIT_SEED,
        lr_online: float = LR_ONLINE,
        lr_batch: float = LR_BATCH,
        minibatch_size: int = BATCH_MINIBATCH_SIZE,
    ) -> None:
        self.models_dir = Path(models_dir)
        self.device = torch.device(device)
        self.seed = int(seed)
        self.lr_online = float(lr_online)
        self.lr_batch = float(lr_batch)
        self.minibatch_size = max(1, int(minibatch_size))

        self._net: ImportanceNet | None = None
        self._optimizer: torch.optim.Adam | None = None
        self._version: str = "uninitialized"
        self._ready = False

        self._train_lock = threading.RLock()
        self._save_lock = threading.Lock()
        self._shuffle_gen = torch.Generator().manual_seed(self.seed)
        self._fault_logged = False

    # ------------------------------------------------------------------
    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def model_version(self) -> str:
        return self._version

    # ------------------------------------------------------------------
    def initialize(self) -> bool:
        """Load the newest checkpoint in ``models_dir`` or create a new network."""
        try:
            latest = latest_checkpoint(self.models_dir)
            if latest is not None:
                logger.info("Loading existing model from %s", latest)
                if self.load_checkpoint(latest):
                    return True
                logger.warning("Could not load %s; creating a new model", latest)

            logger.info("Creating new model with seeded initialisation (seed=%d)", self.seed)
            net = self._create_network()
            with self._train_lock:
                self._net = net
                self._optimizer = torch.optim.Adam(net.parameters(), lr=self.lr_online)
                self._version = f"{MODEL_VERSION_BASE}-{version_stamp()}"
                self._ready = True
            logger.info("Importance model initialised. Version: %s", self._version)
            return True
        except Exception:
            logger.exception("Failed to initialise importance model")
            self._ready = False
            return False

    def _create_network(self) -> ImportanceNet:
        # fork_rng keeps the seeded init from disturbing the global torch RNG
        with torch.random.fork_rng(devices=[]):
            torch.manual_seed(self.seed)
            net = ImportanceNet()
            net.reset_parameters()
        return net.to(self.device)

    # ------------------------------------------------------------------
    def _log_fault(self, what: str) -> None:
        if not self._fault_logged:
            self._fault_logged = True
            logger.exception("%s failed; returning neutral scores", what)
        else:
            logger.debug("%s failed again; returning neutral scores", what)

    def score(self, vector: FeatureVector) -> float:
        """Forward pass for one vector; ``0.5`` when not ready or on any fault."""
        if not self._ready:
            return DEFAULT_SCORE
        try:
            net = self._net
            x = torch.from_numpy(vector.to_numpy()).unsqueeze(0).to(self.device)
            with torch.no_grad():
                out = float(net(x, train=False)[0, 0])
            if not math.isfinite(out):
                raise FloatingPointError(f"non-finite score {out}")
            return out
        except Exception:
            self._log_fault("Scoring")
            return DEFAULT_SCORE

    def batch_score(self, vectors: Sequence[FeatureVector]) -> list[float]:
        """Vectorised forward pass preserving input order."""
        n = len(vectors)
        if not self._ready or n == 0:
            return [DEFAULT_SCORE] * n
        try:
            net = self._net
            x = torch.from_numpy(np.stack([v.to_numpy() for v in vectors])).to(self.device)
            with torch.no_grad():
                out = net(x, train=False).reshape(-1).cpu().numpy().astype(np.float64)
            if out.shape != (n,) or not np.all(np.isfinite(out)):
                raise FloatingPointError("malformed batch output")
            return out.tolist()
        except Exception:
            self._log_fault("Batch scoring")
            return [DEFAULT_SCORE] * n

    # ------------------------------------------------------------------
    def _set_lr(self, lr: float) -> None:
        for group in self._optimizer.param_groups:
            group["lr"] = lr

    def _step(self, net: ImportanceNet, x: torch.Tensor, y: torch.Tensor) -> float:
        with torch.enable_grad():
            self._optimizer.zero_grad()
            loss = F.mse_loss(net(x, train=True), y)
            if not torch.isfinite(loss):
                raise FloatingPointError(f"non-finite loss {loss.item()}")
            loss.backward()
            self._optimizer.step()
        return float(loss.item())

    def _tensors(self, examples: Sequence[TrainingExample]) -> tuple[torch.Tensor, torch.Tensor]:
        x = torch.from_numpy(np.stack([e.features.to_numpy() for e in examples]))
        y = torch.tensor([[float(e.target_score)] for e in examples], dtype=torch.float32)
        if x.shape[1] != FEATURE_DIM:
            raise ValueError(f"expected {FEATURE_DIM} features, got {x.shape[1]}")
        return x.to(self.device), y.to(self.device)

    def train_online(self, example: TrainingExample) -> bool:
        """Single gradient step at the online learning rate."""
        if not self._ready:
            return False
        try:
            x, y = self._tensors([example])
            with self._train_lock:
                self._set_lr(self.lr_online)
                self._step(self._net, x, y)
            return True
        except Exception:
            logger.exception("Failed to train online")
            return False

    @timer
    def train_batch(self, examples: Sequence[TrainingExample], epochs: int) -> bool:
        """``epochs`` shuffled mini-batch passes at the batch learning rate."""
        if not self._ready or not examples or epochs <= 0:
            return False
        try:
            x, y = self._tensors(examples)
            n = x.shape[0]
            logger.info("Training on batch of %d examples for %d epochs", n, epochs)
            with self._train_lock:
                net = self._net
                self._set_lr(self.lr_batch)
                try:
                    for epoch in range(epochs):
                        perm = torch.randperm(n, generator=self._shuffle_gen).to(self.device)
                        total = 0.0
                        for start in range(0, n, self.minibatch_size):
                            idx = perm[start:start + self.minibatch_size]
                            total += self._step(net, x[idx], y[idx]) * len(idx)
                        logger.debug("Epoch %d - loss: %.5f", epoch, total / n)
                finally:
                    self._set_lr(self.lr_online)
            logger.info("Batch training completed")
            return True
        except Exception:
            logger.exception("Failed to train batch")
            return False

    # ------------------------------------------------------------------
    def save_checkpoint(self) -> str | None:
        """Write a new versioned checkpoint; returns its path or ``None``."""
        if not self._ready:
            return None
        try:
            with self._save_lock:
                with self._train_lock:
                    payload = {
                        "state_dict": {k: v.detach().cpu().clone() for k, v in self._net.state_dict().items()},
                        "optimizer": copy.deepcopy(self._optimizer.state_dict()),
                        "hparams": {
                            "input_dim": self._net.fc1.in_features,
                            "hidden_1": self._net.fc1.out_features,
                            "hidden_2": self._net.fc2.out_features,
                            "dropout": self._net.dropout,
                        },
                    }

                ensure_dir(self.models_dir)
                version = f"{MODEL_VERSION_BASE}-{version_stamp()}"
                path = self.models_dir / checkpoint_name(version)
                while path.exists():
                    version = f"{MODEL_VERSION_BASE}-{version_stamp()}"
                    path = self.models_dir / checkpoint_name(version)
                payload["version"] = version

                # write to temp file then rename
                tmp = path.with_name(f".{path.name}.tmp")
                torch.save(payload, tmp)
                tmp.replace(path)

            self._version = version
            logger.info("Model checkpoint saved: %s", path)
            return str(path.resolve())
        except Exception:
            logger.exception("Failed to save model checkpoint")
            return None

    def load_checkpoint(self, checkpoint_id: str | Path) -> bool:
        """Replace the live network with the weights stored at ``checkpoint_id``."""
        path = Path(checkpoint_id)
        if not path.is_file():
            logger.warning("Checkpoint file not found: %s", path)
            return False
        try:
            obj = torch.load(path, map_location="cpu", weights_only=True)
            # Support either {"state_dict": ...} or raw state_dict
            state_dict = obj.get("state_dict", obj) if isinstance(obj, dict) else obj
            hp = obj.get("hparams", {}) if isinstance(obj, dict) else {}

            net = ImportanceNet(
                input_dim=int(hp.get("input_dim", FEATURE_DIM)),
                hidden_1=int(hp.get("hidden_1", HIDDEN_1_DIM)),
                hidden_2=int(hp.get("hidden_2", HIDDEN_2_DIM)),
                dropout=float(hp.get("dropout", DROPOUT_RATE)),
            )
            net.load_state_dict(state_dict)
            net = net.to(self.device)
            optimizer = torch.optim.Adam(net.parameters(), lr=self.lr_online)
            opt_state = obj.get("optimizer") if isinstance(obj, dict) else None
            if opt_state:
                try:
                    optimizer.load_state_dict(opt_state)
                except (ValueError, KeyError) as e:
                    logger.warning("Optimizer state in %s not restored: %s", path, e)

            version = parse_version(path.name)
            if version == "unknown" and isinstance(obj, dict):
                version = str(obj.get("version", version))

            with self._train_lock:
                self._net = net
                self._optimizer = optimizer
                self._set_lr(self.lr_online)
                self._version = version
                self._ready = True
            logger.info("Model loaded from checkpoint: %s (version %s)", path, version)
            return True
        except Exception:
            logger.exception("Failed to load model checkpoint %s", path)
            return False

    # ------------------------------------------------------------------
    def weights_digest(self) -> str:
        """SHA-256 over the current weights, for change detection."""
        h = hashlib.sha256()
        with self._train_lock:
            if self._net is None:
                return h.hexdigest()
            for name, tensor in sorted(self._net.state_dict().items()):
                h.update(name.encode("utf-8"))
                h.update(tensor.detach().cpu().numpy().tobytes())
        return h.hexdigest()

    def shutdown(self) -> str | None:
        """Save a final checkpoint and stop serving."""
        checkpoint = self.save_checkpoint() if self._net is not None else None
        self._ready = False
        logger.info("Importance model shut down")
        return checkpoint
