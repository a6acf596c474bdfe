from typing import List
import pandas as pd
from sklearn.base import BaseEstimator, TransformerMixin

class FeatureSubsetter(BaseEstimator, TransformerMixin):
    """
    Selects and orders the predictor columns a model was tuned on.
    Occurrence tables also carry geometry and partition group columns,
    which must never reach the estimator.
    """
    def __init__(self, feature_names: List[str]):
        self.feature_names = feature_names

    def fit(self, X, y=None):
        return self

    def transform(self, X):
        if isinstance(X, pd.DataFrame):
            missing = [f for f in self.feature_names if f not in X.columns]
            if missing:
                raise ValueError(f"Predictors missing from input data: {missing}")
            return X[self.feature_names]
        return pd.DataFrame(X, columns=self.feature_names)
