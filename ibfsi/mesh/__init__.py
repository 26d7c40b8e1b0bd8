"""계층형 메쉬, Q1 자유도, 적분점 평가."""

from .element import ElementType, get_element_info, element_type_for_dim
from .mesh import Mesh, INTERIOR
from .generators import hyper_rectangle
from .dof_handler import DoFHandler, AffineConstraints, make_hanging_node_constraints
from .fe_values import FEValues, FEFaceValues, gather_cell_values, symmetric_part
from .solution_transfer import SolutionTransfer

__all__ = [
    "ElementType",
    "get_element_info",
    "element_type_for_dim",
    "Mesh",
    "INTERIOR",
    "hyper_rectangle",
    "DoFHandler",
    "AffineConstraints",
    "make_hanging_node_constraints",
    "FEValues",
    "FEFaceValues",
    "gather_cell_values",
    "symmetric_part",
    "SolutionTransfer",
]
