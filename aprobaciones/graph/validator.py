"""
Validador estructural de definiciones de workflow.

Recibe nodos y aristas tal como los produce el editor (dicts) y devuelve un
reporte con una violación por regla incumplida. No tiene efectos laterales:
solo una definición sin violaciones de severidad ``error`` puede publicarse.
"""
from collections import Counter, deque
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Set

from pydantic import ValidationError as PydanticValidationError

from .registry import AUTOMATIC_LABELS, node_type
from .types import ConditionClause, Edge, Node, NodeKind, WorkflowGraph

ERROR = "error"
WARNING = "advertencia"


@dataclass
class Violation:
    code: str
    message: str
    node_id: Optional[str] = None
    edge_id: Optional[str] = None
    severity: str = ERROR

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ValidationReport:
    violations: List[Violation] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)

    @property
    def errors(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == ERROR]

    @property
    def warnings(self) -> List[Violation]:
        return [v for v in self.violations if v.severity == WARNING]

    @property
    def valid(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "valid": self.valid,
            "violations": [v.to_dict() for v in self.violations],
            "stats": dict(self.stats),
        }


def _edge_ref(edge: Edge) -> str:
    return edge.id or f"{edge.source}->{edge.target}[{edge.label.value}]"


class GraphValidator:
    """Aplica las reglas del registro y de alcanzabilidad sobre un grafo candidato."""

    def __init__(
        self,
        nodes: Iterable[Dict[str, Any]],
        edges: Iterable[Dict[str, Any]],
        activation_condition: Optional[List[Dict[str, Any]]] = None,
    ):
        self.raw_nodes = list(nodes or [])
        self.raw_edges = list(edges or [])
        self.activation_condition = activation_condition
        self.violations: List[Violation] = []

    def _add(self, code: str, message: str, **kwargs) -> None:
        self.violations.append(Violation(code=code, message=message, **kwargs))

    def validate(self) -> ValidationReport:
        nodes = self._parse_nodes()
        edges = self._parse_edges()

        self._check_duplicate_ids(nodes)
        starts = [n for n in nodes if n.kind == NodeKind.inicio]
        ends = [n for n in nodes if n.kind == NodeKind.fin]
        if not starts:
            self._add("falta_inicio", "Falta nodo de inicio")
        elif len(starts) > 1:
            self._add(
                "multiples_inicios",
                f"Solo puede haber un nodo de inicio; se encontraron {len(starts)}",
            )
        if not ends:
            self._add("falta_fin", "Falta al menos un nodo de fin")

        known = {n.id for n in nodes}
        edges = self._check_edges(edges, known)
        graph = WorkflowGraph(nodes, edges)

        for node in graph.nodes_by_id.values():
            self._check_config(node)
            self._check_handles(graph, node)
            self._check_degree(graph, node)

        if len(starts) == 1:
            self._check_reachability(graph, starts[0])
        if ends:
            self._check_paths_to_end(graph, ends)
        self._check_cycles(graph)
        self._check_activation_condition()

        return ValidationReport(
            violations=self.violations,
            stats={
                "total_nodos": len(nodes),
                "total_aristas": len(edges),
                "nodos_inicio": len(starts),
                "nodos_fin": len(ends),
                "nodos_aprobacion": sum(1 for n in nodes if n.kind == NodeKind.aprobacion),
                "nodos_condicion": sum(1 for n in nodes if n.kind == NodeKind.condicion),
                "nodos_accion": sum(1 for n in nodes if n.kind == NodeKind.accion),
            },
        )

    # ------------------------------------------------------------------ parse

    def _parse_nodes(self) -> List[Node]:
        nodes = []
        for index, raw in enumerate(self.raw_nodes):
            try:
                nodes.append(Node.model_validate(raw))
            except PydanticValidationError as exc:
                node_id = raw.get("id") if isinstance(raw, dict) else None
                self._add(
                    "nodo_invalido",
                    f"Nodo #{index} inválido: {exc.errors()[0]['msg']}",
                    node_id=node_id,
                )
        return nodes

    def _parse_edges(self) -> List[Edge]:
        edges = []
        for index, raw in enumerate(self.raw_edges):
            try:
                edges.append(Edge.model_validate(raw))
            except PydanticValidationError as exc:
                edge_id = raw.get("id") if isinstance(raw, dict) else None
                self._add(
                    "arista_invalida",
                    f"Arista #{index} inválida: {exc.errors()[0]['msg']}",
                    edge_id=edge_id,
                )
        return edges

    # ---------------------------------------------------------------- checks

    def _check_duplicate_ids(self, nodes: List[Node]) -> None:
        counts = Counter(n.id for n in nodes)
        for node_id, count in counts.items():
            if count > 1:
                self._add("nodo_duplicado", f"Id de nodo repetido {count} veces", node_id=node_id)

    def _check_edges(self, edges: List[Edge], known: Set[str]) -> List[Edge]:
        """Reporta aristas rotas y devuelve solo las utilizables para el grafo."""
        usable = []
        seen = set()
        for edge in edges:
            ref = _edge_ref(edge)
            if edge.source not in known or edge.target not in known:
                self._add(
                    "arista_huerfana",
                    f"La arista {ref} apunta a un nodo inexistente",
                    edge_id=edge.id,
                )
                continue
            if edge.source == edge.target:
                self._add(
                    "auto_conexion",
                    "Una arista no puede conectar un nodo consigo mismo",
                    node_id=edge.source,
                    edge_id=edge.id,
                )
                continue
            key = (edge.source, edge.label, edge.target)
            if key in seen:
                self._add(
                    "arista_duplicada",
                    f"Arista duplicada {ref}",
                    node_id=edge.source,
                    edge_id=edge.id,
                )
                continue
            seen.add(key)
            usable.append(edge)
        return usable

    def _check_config(self, node: Node) -> None:
        try:
            node_type(node.kind).parse_config(node.config)
        except PydanticValidationError as exc:
            for err in exc.errors():
                path = ".".join(str(p) for p in err["loc"])
                self._add(
                    "config_invalida",
                    f"Nodo {node.kind.value} '{node.name or node.id}': {path or 'config'}: {err['msg']}",
                    node_id=node.id,
                )

    def _check_handles(self, graph: WorkflowGraph, node: Node) -> None:
        spec = node_type(node.kind)
        counts = Counter(e.label for e in graph.outgoing.get(node.id, []))
        for label, count in counts.items():
            if spec.handle(label) is None:
                self._add(
                    "handle_no_permitido",
                    f"Un nodo {node.kind.value} no admite salidas '{label.value}'",
                    node_id=node.id,
                )
        for rule in spec.handles:
            count = counts.get(rule.label, 0)
            if count < rule.min:
                self._add(
                    "handle_faltante",
                    f"Nodo {node.kind.value} '{node.name or node.id}' requiere una salida '{rule.label.value}'",
                    node_id=node.id,
                )
            elif count > rule.max:
                self._add(
                    "handle_excedido",
                    f"Nodo {node.kind.value} '{node.name or node.id}' tiene {count} salidas "
                    f"'{rule.label.value}' (máximo {rule.max})",
                    node_id=node.id,
                )

    def _check_degree(self, graph: WorkflowGraph, node: Node) -> None:
        if node.kind != NodeKind.fin and not graph.outgoing.get(node.id):
            self._add("sin_salida", f"Nodo '{node.name or node.id}' sin conexión de salida", node_id=node.id)
        if node.kind != NodeKind.inicio and not graph.incoming.get(node.id):
            self._add("sin_entrada", f"Nodo '{node.name or node.id}' sin conexión de entrada", node_id=node.id)

    def _check_reachability(self, graph: WorkflowGraph, start: Node) -> None:
        reached = _bfs(start.id, graph.successors)
        for node_id in graph.nodes_by_id:
            if node_id not in reached:
                self._add("inalcanzable", "Nodo no alcanzable desde el inicio", node_id=node_id)

    def _check_paths_to_end(self, graph: WorkflowGraph, ends: List[Node]) -> None:
        reaches_end: Set[str] = set()
        for end in ends:
            reaches_end |= _bfs(end.id, graph.predecessors)
        for node_id in graph.nodes_by_id:
            if node_id not in reaches_end:
                self._add("sin_camino_a_fin", "Desde este nodo no se alcanza ningún fin", node_id=node_id)

    def _check_cycles(self, graph: WorkflowGraph) -> None:
        automatic = _find_cycle(graph, lambda e: e.label in AUTOMATIC_LABELS)
        if automatic:
            self._add(
                "ciclo_automatico",
                "Ciclo sin decisión humana: " + " → ".join(automatic),
                node_id=automatic[0],
            )
            return
        cycle = _find_cycle(graph, lambda e: True)
        if cycle:
            self._add(
                "ciclo",
                "El flujo puede volver a un paso anterior: " + " → ".join(cycle),
                node_id=cycle[0],
                severity=WARNING,
            )

    def _check_activation_condition(self) -> None:
        """La condición de activación se evalúa en tiempo de ejecución; aquí solo su forma."""
        if self.activation_condition is None:
            return
        if not isinstance(self.activation_condition, list):
            self._add("condicion_activacion_invalida", "La condición de activación debe ser una lista de cláusulas")
            return
        for index, raw in enumerate(self.activation_condition):
            try:
                ConditionClause.model_validate(raw)
            except PydanticValidationError as exc:
                self._add(
                    "condicion_activacion_invalida",
                    f"Cláusula de activación #{index}: {exc.errors()[0]['msg']}",
                )


def _bfs(origin: str, neighbours) -> Set[str]:
    visited = {origin}
    queue = deque([origin])
    while queue:
        current = queue.popleft()
        for nxt in neighbours(current):
            if nxt not in visited:
                visited.add(nxt)
                queue.append(nxt)
    return visited


def _find_cycle(graph: WorkflowGraph, include) -> List[str]:
    """Devuelve el primer ciclo encontrado (lista de ids cerrada) o lista vacía."""
    visited: Set[str] = set()
    for root in graph.nodes_by_id:
        if root in visited:
            continue
        visited.add(root)
        path: List[str] = [root]
        on_path: Set[str] = {root}
        # DFS con pila explícita: un iterador de aristas por nodo del camino
        frames = [iter(graph.outgoing.get(root, []))]
        while frames:
            edge = next(frames[-1], None)
            if edge is None:
                frames.pop()
                on_path.discard(path.pop())
                continue
            if not include(edge):
                continue
            if edge.target in on_path:
                return path[path.index(edge.target):] + [edge.target]
            if edge.target not in visited:
                visited.add(edge.target)
                path.append(edge.target)
                on_path.add(edge.target)
                frames.append(iter(graph.outgoing.get(edge.target, [])))
    return []


def validate_graph(
    nodes: Iterable[Dict[str, Any]],
    edges: Iterable[Dict[str, Any]],
    activation_condition: Optional[List[Dict[str, Any]]] = None,
) -> ValidationReport:
    return GraphValidator(nodes, edges, activation_condition).validate()
