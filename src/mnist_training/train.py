"""Training entrypoint for mnist_training.

Usage:
    mnist-train                                     # LeNet-5 defaults
    mnist-train --config-name train_mnist_softmax   # softmax regression
    mnist-train data.batch_size=64                  # override batch size
    mnist-train trainer.max_epochs=1 data.data_root=/data/mnist
"""

import sys
from pathlib import Path
from typing import Any

import hydra
import lightning as L
from hydra.core.hydra_config import HydraConfig
from hydra.errors import InstantiationException
from loguru import logger
from omegaconf import DictConfig, OmegaConf

# CRITICAL: import models to trigger @register decorators BEFORE Hydra parses config
import mnist_training.models  # noqa: F401
from mnist_training.backend import TorchBackend
from mnist_training.config import TrainerConfig, check_compatible, parse_config
from mnist_training.data.datamodule import MnistDataModule
from mnist_training.errors import ConfigurationError, MnistTrainingError
from mnist_training.evaluation import EvaluationResult
from mnist_training.models.base import BaseClassificationModel
from mnist_training.persistence import artifact_name
from mnist_training.reporting import print_evaluation, print_model_info
from mnist_training.trainer import TrainingLoop


def instantiate(node: DictConfig, **kwargs: Any) -> Any:
    """``hydra.utils.instantiate`` that surfaces our own errors unwrapped."""
    try:
        return hydra.utils.instantiate(node, _convert_="all", **kwargs)
    except InstantiationException as e:
        cause = e.__cause__
        if isinstance(cause, MnistTrainingError):
            raise cause from None
        raise ConfigurationError(str(e)) from e


def run(cfg: DictConfig, output_dir: Path) -> tuple[list[EvaluationResult], Path]:
    """Prepare data, train, evaluate and save. Returns results and artifact path."""
    L.seed_everything(cfg.get("seed", 1234), workers=True)

    datamodule: MnistDataModule = instantiate(cfg.data)
    model: BaseClassificationModel = instantiate(cfg.model)
    trainer_cfg = parse_config(TrainerConfig, OmegaConf.to_container(cfg.trainer, resolve=True))  # type: ignore[arg-type]
    check_compatible(datamodule.config, model.config)

    datamodule.prepare_data()
    datamodule.setup()
    check_compatible(datamodule.config, model.config, datamodule.num_classes)
    print_model_info(model)

    class_names = sorted(datamodule.class_to_idx, key=datamodule.class_to_idx.__getitem__)
    artifact_path = output_dir / artifact_name(
        model.config.name,
        model.config.seed,
        trainer_cfg.max_epochs,
        datamodule.config.batch_size,
    )

    with TorchBackend(
        model,
        accelerator=trainer_cfg.accelerator,
        labels_mapping=datamodule.labels_mapping(),
    ) as backend:
        loop = TrainingLoop(
            backend,
            datamodule.train_batches(),
            datamodule.held_out_batches(),
            model.schedule,
            num_classes=model.config.num_classes,
            max_epochs=trainer_cfg.max_epochs,
            score_interval=trainer_cfg.score_interval,
            on_evaluation=lambda r: print_evaluation(r, class_names),
        )
        results = loop.run()

        if datamodule.has_validation:
            logger.info("Evaluating on the test partition")
            final = loop.evaluate(datamodule.test_batches())
            print_evaluation(final, class_names)
            results.append(final)

        backend.save(artifact_path)

    final_result = results[-1]
    logger.info(
        f"Done: accuracy={final_result.accuracy:.4f}, f1={final_result.f1:.4f} "
        f"after {trainer_cfg.max_epochs} epoch(s), {loop.global_step} steps; "
        f"model saved to {artifact_path}"
    )
    return results, artifact_path


@hydra.main(version_base=None, config_path="conf", config_name="train_mnist_lenet")
def main(cfg: DictConfig) -> None:
    """Run training with the given Hydra config."""
    logger.remove()
    logger.add(sys.stderr, level=cfg.get("log_level", "INFO"))

    logger.info(f"Configuration:\n{OmegaConf.to_yaml(cfg)}")

    output_dir = Path(cfg.get("artifact_dir") or HydraConfig.get().runtime.output_dir)
    try:
        run(cfg, output_dir)
    except MnistTrainingError as e:
        logger.error(f"Run aborted: {type(e).__name__}: {e}")
        raise


if __name__ == "__main__":
    main()
