from survival_forest.data import SurvivalData, load_survival_data
from survival_forest.SurvivalForest import Forest
from survival_forest.SurvivalTree import Node, Tree

__all__ = ['SurvivalData', 'load_survival_data', 'Forest', 'Node', 'Tree']
