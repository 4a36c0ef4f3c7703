"""Console reporting: model summary and evaluation tables."""

from __future__ import annotations

from rich import box
from rich.console import Console
from rich.table import Table

from mnist_training.evaluation import EvaluationResult
from mnist_training.models.base import BaseClassificationModel


def model_info_table(model: BaseClassificationModel) -> Table:
    """Parameter counts, size and per-layer output shapes."""
    total_params = sum(p.numel() for p in model.parameters())
    trainable_params = sum(p.numel() for p in model.parameters() if p.requires_grad)
    size_mb = sum(p.numel() * p.element_size() for p in model.parameters()) / (1024 * 1024)

    table = Table(
        title="Model Information",
        header_style="bold magenta",
        box=box.SQUARE,
        show_lines=True,
    )
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Model Class", type(model).__name__)
    table.add_row("Total Parameters", f"{total_params:,}")
    table.add_row("Trainable Parameters", f"{trainable_params:,}")
    table.add_row("Model Size", f"{size_mb:.2f} MB")
    table.add_row("Input", str(model.config.input_shape))
    for i, (layer, shape) in enumerate(zip(model.config.layers, model.config.layer_shapes)):
        table.add_row(f"Layer {i} ({layer.kind}, {layer.activation})", str(shape))
    return table


def evaluation_table(result: EvaluationResult, class_names: list[str] | None = None) -> Table:
    """Summary scalars followed by the confusion matrix (rows = true class)."""
    n = len(result.confusion_matrix)
    names = class_names or [str(i) for i in range(n)]

    table = Table(
        title=(
            f"Evaluation - epoch {result.epoch} ({result.num_samples} samples)\n"
            f"Accuracy {result.accuracy:.4f} | Precision {result.precision:.4f} | "
            f"Recall {result.recall:.4f} | F1 {result.f1:.4f}"
        ),
        header_style="bold magenta",
        box=box.SIMPLE,
    )
    table.add_column("true \\ pred", style="cyan")
    for name in names:
        table.add_column(name, justify="right")
    table.add_column("acc", justify="right", style="green")
    for name, row, acc in zip(names, result.confusion_matrix, result.per_class_accuracy):
        table.add_row(name, *(str(c) for c in row), f"{acc:.3f}")
    return table


def print_model_info(model: BaseClassificationModel, console: Console | None = None) -> None:
    (console or Console()).print(model_info_table(model))


def print_evaluation(
    result: EvaluationResult,
    class_names: list[str] | None = None,
    console: Console | None = None,
) -> None:
    (console or Console()).print(evaluation_table(result, class_names))
