"""
Tabular and graphical views of models for documentation and reports.
"""

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from .jacobians import jacobian_sparsity
from .model import DynamicsModel


def model_frame(model: DynamicsModel) -> pd.DataFrame:
    """
    One row per state: its name and the right-hand side of its equation.

    Parameters
    ----------
    model : DynamicsModel

    Returns
    -------
    pd.DataFrame
        Columns ``state`` and ``derivative``, indexed by state position
    """
    backend = model.backend
    return pd.DataFrame(
        {
            'state': list(model.state_names),
            'derivative': [backend.to_string(eq) for eq in model.equations],
        },
        index=pd.RangeIndex(model.dimension, name='index'),
    )


def plot_jacobian_sparsity(model: DynamicsModel,
                           color: str = 'red') -> go.Figure:
    """
    Heatmap of the structurally non-zero entries of a model's Jacobian.

    Parameters
    ----------
    model : DynamicsModel
    color : str, optional
        Color of non-zero cells (default: 'red')

    Returns
    -------
    go.Figure
        Plotly figure; rows are equations, columns are states
    """
    mask = jacobian_sparsity(model).astype(int)
    names = list(model.state_names)

    fig = go.Figure()
    fig.add_trace(go.Heatmap(
        z=mask,
        x=names,
        y=[f"d({name})/dt" for name in names],
        colorscale=[[0, 'white'], [1, color]],
        showscale=False,
        hovertemplate='%{y} / %{x}<extra></extra>',
    ))
    fig.update_layout(
        title=f"Jacobian sparsity of {model.name} "
              f"({int(np.count_nonzero(mask))} of {mask.size} non-zero)",
        yaxis=dict(autorange='reversed'),
        xaxis_title='State',
        yaxis_title='Equation',
    )
    return fig
