"""
Binomial logistic regression of shelter availability and its diagnostics.

Model:
    availability_binary ~ log-transformed crime counts + weather + CPI
                          + unemployment + C(sector) + C(hood_158)

fitted once as a statsmodels GLM with a Binomial family (logit link).

Diagnostics:
    - likelihood-ratio test against the intercept-only model
    - pseudo R^2 (McFadden, Cox-Snell, Nagelkerke)
    - confusion matrix at a probability threshold (default 0.5) with
      accuracy / precision / recall / F1 and ROC AUC
    - variance inflation factors for the continuous predictors
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import statsmodels.api as sm
import statsmodels.formula.api as smf
from scipy import stats as scipy_stats
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_auc_score,
)
from statsmodels.stats.outliers_influence import variance_inflation_factor
from statsmodels.tools.sm_exceptions import ModelWarning

from shelter_avail.config import get_section


class ModelError(Exception):
    """Raised when the availability model cannot be fitted."""
    pass


def _load_model_config() -> dict:
    """Load model specification from params.yml."""
    return get_section("model")


@dataclass
class ModelReport:
    """Fitted model plus every diagnostic written to disk or printed."""
    formula: str
    n_obs: int
    result: Any
    null_result: Any
    converged: bool
    lr_test: Dict[str, float]
    pseudo_r2: Dict[str, float]
    classification: Dict[str, float]
    confusion: pd.DataFrame
    coefficients: pd.DataFrame
    vif: pd.DataFrame
    warnings: List[str] = field(default_factory=list)


# =============================================================================
# Formula and data
# =============================================================================

def build_formula(
    outcome: str,
    continuous: Sequence[str],
    categorical: Sequence[str] = (),
) -> str:
    """
    Build a patsy formula; categoricals are wrapped in C().

    >>> build_formula("y", ["x1", "x2"], ["sector"])
    'y ~ x1 + x2 + C(sector)'
    """
    terms = list(continuous) + [f"C({c})" for c in categorical]
    rhs = " + ".join(terms) if terms else "1"
    return f"{outcome} ~ {rhs}"


def model_frame(
    df: pd.DataFrame,
    outcome: str,
    continuous: Sequence[str],
    categorical: Sequence[str] = (),
) -> pd.DataFrame:
    """
    Complete-case frame with plain numpy dtypes for patsy.

    Full and null models are fitted on this same frame so their
    log-likelihoods are comparable.

    Raises:
        KeyError: If a model column is missing
        ModelError: If the outcome is not binary or has a single class
    """
    columns = [outcome] + list(continuous) + list(categorical)
    missing = [c for c in columns if c not in df.columns]
    if missing:
        raise KeyError(f"Model columns not in table: {missing}")

    data = df[columns].dropna().copy()
    if data.empty:
        raise ModelError("No complete rows to fit")

    data[outcome] = data[outcome].astype(int)
    classes = set(data[outcome].unique())
    if not classes <= {0, 1}:
        raise ModelError(f"Outcome {outcome} must be 0/1, got {sorted(classes)}")
    if len(classes) < 2:
        raise ModelError(f"Outcome {outcome} has a single class ({classes.pop()}); cannot fit")

    for col in continuous:
        data[col] = data[col].astype("float64")
    for col in categorical:
        data[col] = data[col].astype(str)
    return data.reset_index(drop=True)


# =============================================================================
# Fitting
# =============================================================================

def fit_logit(
    data: pd.DataFrame,
    formula: str,
    max_iter: int = 100,
    fit_warnings: Optional[List[str]] = None,
):
    """
    Fit a Binomial GLM (logit link).

    IRLS falls back to a pseudo-inverse on a singular design, so the rank of
    the design matrix is checked after fitting. Statsmodels model warnings
    (perfect separation, convergence, ...) do not raise; their messages are
    appended to `fit_warnings` when a list is passed. Other warnings are
    re-issued unchanged.

    Raises:
        ModelError: If the design matrix is rank deficient or the fit fails
    """
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            result = smf.glm(formula, data=data, family=sm.families.Binomial()).fit(maxiter=max_iter)
        except (np.linalg.LinAlgError, ValueError) as e:
            raise ModelError(f"Model fit failed for '{formula}': {e}") from e

    exog = np.asarray(result.model.exog, dtype=float)
    rank = int(np.linalg.matrix_rank(exog))
    if rank < exog.shape[1]:
        raise ModelError(
            f"Singular design for '{formula}': rank {rank} < {exog.shape[1]} columns "
            f"({', '.join(result.model.exog_names)})"
        )

    model_messages = []
    for w in caught:
        if issubclass(w.category, ModelWarning):
            model_messages.append(f"{w.category.__name__}: {w.message}")
        else:
            warnings.warn_explicit(w.message, w.category, w.filename, w.lineno)
    if fit_warnings is not None:
        # IRLS repeats the same warning on every iteration
        fit_warnings.extend(dict.fromkeys(model_messages))
    return result


def fit_null_model(data: pd.DataFrame, outcome: str, max_iter: int = 100):
    """Intercept-only model on the same rows."""
    return fit_logit(data, f"{outcome} ~ 1", max_iter=max_iter)


# =============================================================================
# Diagnostics
# =============================================================================

def likelihood_ratio_test(full, null) -> Dict[str, float]:
    """
    Likelihood-ratio test of the full model against the null model.

    statistic = 2 * (llf_full - llf_null), chi-square with
    df = df_model_full - df_model_null.
    """
    statistic = 2.0 * (full.llf - null.llf)
    df_diff = float(full.df_model - null.df_model)
    p_value = float(scipy_stats.chi2.sf(statistic, df_diff)) if df_diff > 0 else float("nan")
    return {
        "lr_statistic": float(statistic),
        "lr_df": df_diff,
        "lr_pvalue": p_value,
        "llf": float(full.llf),
        "llf_null": float(null.llf),
    }


def pseudo_r2(full, null, n_obs: int) -> Dict[str, float]:
    """
    Pseudo R^2 measures for a binary model.

    McFadden    1 - llf / llnull
    Cox-Snell   1 - exp(2 (llnull - llf) / n)
    Nagelkerke  Cox-Snell / (1 - exp(2 llnull / n))
    """
    llf = float(full.llf)
    llnull = float(null.llf)
    mcfadden = 1.0 - llf / llnull if llnull != 0 else float("nan")
    cox_snell = 1.0 - np.exp(2.0 * (llnull - llf) / n_obs)
    max_cs = 1.0 - np.exp(2.0 * llnull / n_obs)
    nagelkerke = cox_snell / max_cs if max_cs > 0 else float("nan")
    return {
        "mcfadden_r2": float(mcfadden),
        "cox_snell_r2": float(cox_snell),
        "nagelkerke_r2": float(nagelkerke),
    }


def classification_metrics(
    y_true: Sequence[int],
    prob: Sequence[float],
    threshold: float = 0.5,
) -> Dict[str, float]:
    """
    Threshold predicted probabilities and score them.

    A probability equal to the threshold is classed as 1.

    Returns:
        Dict with tn, fp, fn, tp, accuracy, precision, recall, f1, roc_auc
        (roc_auc is NaN when y_true has a single class)
    """
    y_true = np.asarray(y_true).astype(int)
    prob = np.asarray(prob, dtype=float)
    y_pred = (prob >= threshold).astype(int)

    tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()

    if len(np.unique(y_true)) == 2:
        auc = float(roc_auc_score(y_true, prob))
    else:
        auc = float("nan")

    return {
        "threshold": float(threshold),
        "tn": int(tn),
        "fp": int(fp),
        "fn": int(fn),
        "tp": int(tp),
        "accuracy": float(accuracy_score(y_true, y_pred)),
        "precision": float(precision_score(y_true, y_pred, zero_division=0)),
        "recall": float(recall_score(y_true, y_pred, zero_division=0)),
        "f1": float(f1_score(y_true, y_pred, zero_division=0)),
        "roc_auc": auc,
    }


def confusion_table(metrics: Dict[str, float]) -> pd.DataFrame:
    """2x2 confusion matrix (rows = actual, columns = predicted)."""
    return pd.DataFrame(
        [[metrics["tn"], metrics["fp"]], [metrics["fn"], metrics["tp"]]],
        index=pd.Index(["actual_0", "actual_1"], name="actual"),
        columns=["predicted_0", "predicted_1"],
    )


def compute_vif(
    df: pd.DataFrame,
    columns: Sequence[str],
    threshold: float = 10.0,
) -> pd.DataFrame:
    """
    Variance inflation factors for continuous predictors.

    VIF is computed on the predictors plus a constant; the constant's own VIF
    is not reported.

    Returns:
        DataFrame with variable, vif, high_vif (vif > threshold), sorted by vif
    """
    columns = list(columns)
    if not columns:
        return pd.DataFrame(columns=["variable", "vif", "high_vif"])

    X = sm.add_constant(df[columns].astype("float64"), has_constant="add")
    values = X.values
    with np.errstate(divide="ignore", invalid="ignore"):
        vifs = [float(variance_inflation_factor(values, i)) for i in range(1, X.shape[1])]

    out = pd.DataFrame({"variable": columns, "vif": vifs})
    out["high_vif"] = out["vif"] > threshold
    return out.sort_values("vif", ascending=False).reset_index(drop=True)


def coefficient_table(result) -> pd.DataFrame:
    """
    Coefficient table with Wald z tests, 95% CIs and odds ratios.

    Columns: term, coef, std_err, z, p_value, ci_lower, ci_upper,
             odds_ratio, or_ci_lower, or_ci_upper
    """
    ci = result.conf_int(alpha=0.05)
    table = pd.DataFrame({
        "term": result.params.index,
        "coef": result.params.values,
        "std_err": result.bse.values,
        "z": result.tvalues.values,
        "p_value": result.pvalues.values,
        "ci_lower": ci.iloc[:, 0].values,
        "ci_upper": ci.iloc[:, 1].values,
    })
    with np.errstate(over="ignore"):
        table["odds_ratio"] = np.exp(table["coef"])
        table["or_ci_lower"] = np.exp(table["ci_lower"])
        table["or_ci_upper"] = np.exp(table["ci_upper"])
    return table


# =============================================================================
# Orchestration
# =============================================================================

def run_availability_model(
    df: pd.DataFrame,
    outcome: Optional[str] = None,
    continuous: Optional[Sequence[str]] = None,
    categorical: Optional[Sequence[str]] = None,
    threshold: Optional[float] = None,
    vif_threshold: Optional[float] = None,
    max_iter: Optional[int] = None,
    logger=None,
) -> ModelReport:
    """
    Fit the availability model and compute all diagnostics.

    Arguments left as None are read from the `model` section of params.yml.

    Raises:
        ModelError: On a single-class outcome, a rank-deficient design or a failed fit
    """
    config = _load_model_config()
    outcome = outcome or config.get("outcome", "availability_binary")
    continuous = list(continuous if continuous is not None else config.get("continuous", []))
    categorical = list(categorical if categorical is not None else config.get("categorical", []))
    threshold = threshold if threshold is not None else config.get("threshold", 0.5)
    vif_threshold = vif_threshold if vif_threshold is not None else config.get("vif_threshold", 10.0)
    max_iter = max_iter or config.get("max_iter", 100)

    data = model_frame(df, outcome, continuous, categorical)
    formula = build_formula(outcome, continuous, categorical)
    n_obs = len(data)

    if logger:
        logger.info(f"Fitting {formula}", extra={"n_obs": n_obs})

    notes: List[str] = []
    full = fit_logit(data, formula, max_iter=max_iter, fit_warnings=notes)
    null = fit_null_model(data, outcome, max_iter=max_iter)

    converged = bool(getattr(full, "converged", True))
    if not converged:
        notes.append(f"Model did not converge in {max_iter} iterations")

    prob = np.asarray(full.predict(data), dtype=float)
    classification = classification_metrics(data[outcome], prob, threshold)

    vif = compute_vif(data, continuous, threshold=vif_threshold)
    for _, row in vif[vif["high_vif"]].iterrows():
        notes.append(f"High VIF for {row['variable']}: {row['vif']:.2f}")

    report = ModelReport(
        formula=formula,
        n_obs=n_obs,
        result=full,
        null_result=null,
        converged=converged,
        lr_test=likelihood_ratio_test(full, null),
        pseudo_r2=pseudo_r2(full, null, n_obs),
        classification=classification,
        confusion=confusion_table(classification),
        coefficients=coefficient_table(full),
        vif=vif,
        warnings=notes,
    )

    if logger:
        logger.log_model_stats({
            "formula": formula,
            "n_obs": n_obs,
            "converged": converged,
            **report.lr_test,
            **report.pseudo_r2,
            **{k: v for k, v in classification.items()},
        })
        for message in notes:
            logger.warning(message)

    return report


def metrics_table(report: ModelReport) -> pd.DataFrame:
    """Flatten fit statistics into (metric, value) rows."""
    metrics = {
        "n_obs": report.n_obs,
        "converged": int(report.converged),
        "aic": float(report.result.aic),
        **report.lr_test,
        **report.pseudo_r2,
        **report.classification,
    }
    return pd.DataFrame({"metric": list(metrics.keys()), "value": list(metrics.values())})


def format_report(report: ModelReport, top_n: int = 15) -> str:
    """Render the printed model report."""
    lr = report.lr_test
    r2 = report.pseudo_r2
    cls = report.classification

    lines = [
        "=" * 60,
        "Shelter availability: binomial logistic regression",
        "=" * 60,
        f"Formula: {report.formula}",
        f"Observations: {report.n_obs:,}   Converged: {report.converged}",
        "",
        "Likelihood-ratio test vs null model:",
        f"  LR chi2({lr['lr_df']:.0f}) = {lr['lr_statistic']:.2f}, p = {lr['lr_pvalue']:.4g}",
        "",
        "Pseudo R^2:",
        f"  McFadden   {r2['mcfadden_r2']:.4f}",
        f"  Cox-Snell  {r2['cox_snell_r2']:.4f}",
        f"  Nagelkerke {r2['nagelkerke_r2']:.4f}",
        "",
        f"Classification (threshold {cls['threshold']:.2f}):",
        report.confusion.to_string(),
        f"  Accuracy  {cls['accuracy']:.4f}",
        f"  Precision {cls['precision']:.4f}",
        f"  Recall    {cls['recall']:.4f}",
        f"  F1        {cls['f1']:.4f}",
        f"  ROC AUC   {cls['roc_auc']:.4f}",
        "",
        "Variance inflation factors:",
        report.vif.to_string(index=False) if not report.vif.empty else "  (no continuous predictors)",
        "",
        f"Coefficients (non-categorical terms, top {top_n} by |z|):",
    ]

    coefs = report.coefficients[~report.coefficients["term"].str.startswith("C(")]
    coefs = coefs.reindex(coefs["z"].abs().sort_values(ascending=False).index).head(top_n)
    lines.append(
        coefs[["term", "coef", "std_err", "p_value", "odds_ratio"]].to_string(
            index=False, float_format=lambda v: f"{v:.4f}"
        )
    )

    if report.warnings:
        lines.append("")
        lines.append("Warnings:")
        lines.extend(f"  - {w}" for w in report.warnings)

    return "\n".join(lines)
