# Island Infant Mortality Mapping
"""
Island Infant Mortality Mapping
A Bayesian spatio-temporal disease-mapping analysis of county-level infant
mortality across two study periods.

Project Structure:
    imrmap/
    ├── common/      - Error taxonomy shared by all stages
    ├── data/        - BLOCK 1: Spreadsheet loading, county index, long format
    ├── spatial/     - BLOCK 2: Neighborhood graph from the adjacency matrix
    ├── models/      - BLOCK 3: Model specification, lincombs, Stan solver
    ├── evaluation/  - BLOCK 4: Posterior summaries and paper tables
    └── reporting/   - BLOCK 5: LaTeX tables and EPS figures
"""

__version__ = "0.1.0"
__author__ = "Island IMR Mapping Team"
